#!/usr/bin/env python3
"""
Vanity & User Lookup API Setup and Run Script

This script checks the local environment and starts the API server with
development settings.
"""

import os
import sys
import subprocess
from pathlib import Path


def setup_environment():
    """Set up environment variables and configuration"""
    print("Setting up Vanity & User Lookup API environment...")

    os.environ.setdefault("ENVIRONMENT", "development")
    os.environ.setdefault("PYTHONPATH", str(Path.cwd()))

    if not os.getenv("DISCORD_BOT_TOKEN") and not Path(".env").exists():
        print("Warning: DISCORD_BOT_TOKEN is not set and no .env file was found")
        print("Lookups will fail until a bot token is configured")
    else:
        print("Bot token configuration found")

    if os.getenv("STATE_BACKEND", "memory") == "redis" and not os.getenv("REDIS_URL"):
        print("STATE_BACKEND=redis requires REDIS_URL")
        return False

    return True


def check_dependencies():
    """Check if required dependencies are installed"""
    print("Checking dependencies...")

    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401
        import aiohttp  # noqa: F401
        import pydantic_settings  # noqa: F401

        print("Core dependencies found")
        return True
    except ImportError as e:
        print(f"Missing dependency: {e}")
        print("Installing dependencies...")

        try:
            subprocess.check_call([sys.executable, "-m", "pip", "install", "-e", "."])
            print("Dependencies installed successfully")
            return True
        except subprocess.CalledProcessError:
            print("Failed to install dependencies")
            return False


def start_server():
    """Start the API server"""
    port = int(os.getenv("PORT", "3000"))
    print("Starting Vanity & User Lookup API server...")
    print(f"Server will be available at: http://localhost:{port}")
    print(f"Health check endpoint: http://localhost:{port}/health")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        import uvicorn

        uvicorn.run(
            "main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            reload=True,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


def main():
    """Main setup and run function"""
    print("Vanity & User Lookup API - Setup and Run")
    print("=" * 40)

    script_dir = Path(__file__).parent
    os.chdir(script_dir)
    print(f"Working directory: {script_dir}")

    if not setup_environment():
        print("Failed to setup environment")
        sys.exit(1)

    if not check_dependencies():
        print("Failed to check/install dependencies")
        sys.exit(1)

    start_server()


if __name__ == "__main__":
    main()
