"""Main entry point for the Storefront Service."""

import uvicorn

from storefront_service.server import app, state

if __name__ == "__main__":
    uvicorn.run(app, host=state.settings.host, port=state.settings.port)
