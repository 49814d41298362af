"""HTTP routes of the Bridge connector."""
from connector.api.routes import router

__all__ = ["router"]
