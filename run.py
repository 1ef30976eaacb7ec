#!/usr/bin/env python3
"""
Startup script for Shopify Bulk Editor API.
Run with: python run.py
"""
import logging
import sys
import uvicorn
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Add app directory to path
sys.path.insert(0, str(Path(__file__).parent))

LOG = logging.getLogger("bulk-editor")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)

if __name__ == "__main__":
    LOG.info("Shopify Bulk Editor API")
    LOG.info("API Documentation: http://localhost:8000/docs")
    LOG.info("Health Check: http://localhost:8000/api/v1/health")

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
