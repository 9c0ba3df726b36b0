from jobguard.middleware.security import SecurityMiddleware

__all__ = ["SecurityMiddleware"]
