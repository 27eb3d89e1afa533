#!/usr/bin/env python
"""Start the checkout API with the port taken from the environment."""
import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))

    print(f"Starting application on port {port}")

    uvicorn.run(
        "storefront.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
