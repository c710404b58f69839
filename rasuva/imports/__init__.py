# rasuva/imports/__init__.py
from .routes import imports_api_bp

__all__ = ["imports_api_bp"]
