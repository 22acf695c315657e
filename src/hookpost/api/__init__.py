"""FastAPI REST API for Hookpost.

Webhook management, delivery log reads, test triggers and event publishing.

Example:
    ```python
    import uvicorn
    from hookpost.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn hookpost.api:app --reload
    ```
"""

from .app import app, create_app
from .router import router

__all__ = [
    "app",
    "create_app",
    "router",
]
