#!/usr/bin/env python3

import uvicorn

from pool_aggregator.config import get_settings
from pool_aggregator.main import app

if __name__ == "__main__":
    settings = get_settings()
    print("Starting Liquidity Pool Aggregator server...")
    print(f"Server will be available at: http://{settings.HOST}:{settings.PORT}")
    print(f"Pools endpoint: http://{settings.HOST}:{settings.PORT}/api/pools/all")
    print("Press Ctrl+C to stop the server")

    try:
        uvicorn.run(
            app,
            host=settings.HOST,
            port=settings.PORT,
            reload=False,
            log_level=settings.LOG_LEVEL.lower(),
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
