from jobguard.utils.ip_utils import (
    get_client_ip,
    is_known_malicious_ip,
    is_suspicious_user_agent,
    is_valid_ip,
    normalize_ip,
)
