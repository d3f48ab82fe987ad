"""
RP Conseil Hub — Entry Point
============================

Run: python main.py
"""

import logging
import os

from dotenv import load_dotenv

from scripts.lib.logger import configure_logging

load_dotenv()

configure_logging()
logger = logging.getLogger("rp-conseil-hub")

PORT = int(os.getenv("DASHBOARD_PORT", "8001"))

if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 60)
    logger.info("  RP CONSEIL HUB — Dossier Analytics")
    logger.info("=" * 60)
    logger.info(f"  Environment : {os.getenv('ENVIRONMENT', 'development')}")
    logger.info(f"  Server      : http://0.0.0.0:{PORT}")
    logger.info(f"  API Docs    : http://localhost:{PORT}/docs")
    logger.info(f"  Password    : {'required' if os.getenv('REQUIRE_PASSWORD', 'false').lower() == 'true' else 'optional'}")
    logger.info(f"  Debug       : {os.getenv('DEBUG', 'false')}")
    logger.info("=" * 60)

    uvicorn.run(
        "dashboard.api.main:app",
        host="0.0.0.0",
        port=PORT,
        reload=os.getenv("DEBUG", "false").lower() == "true",
    )
