"""
Main entry point for track-search.

Creates the FastAPI application instance for uvicorn:

    uvicorn track_search.main:app --port 8082
"""

from track_search.api.app import create_app
from track_search.core.config import get_settings

# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().track_search_port)  # noqa: S104
