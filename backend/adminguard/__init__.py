"""AdminGuard: admin session, two-factor and presence security core"""
__version__ = "0.1.0"
