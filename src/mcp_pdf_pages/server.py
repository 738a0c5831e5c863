"""
MCP PDF Pages Server - Official FastMCP Mixin Pattern
Using fastmcp.contrib.mcp_mixin for proper modular architecture
"""

import os
import logging
from importlib.metadata import version, PackageNotFoundError
from typing import Dict, Any, List, Optional
from pathlib import Path

from fastmcp import FastMCP
from fastmcp.contrib.mcp_mixin import MCPMixin

from .mixins.page_removal import PageRemovalMixin
from .security import (
    MAX_PDF_SIZE,
    DEFAULT_CACHE_DIR,
    SecurityPolicy,
    parse_allowed_domains,
    parse_allowed_paths,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVER_NAME = "pdf-server"
DEFAULT_VERSION = "0.1.0"


def get_version() -> str:
    try:
        return version("mcp-pdf-pages")
    except PackageNotFoundError:
        return DEFAULT_VERSION


class PDFPagesServer:
    """
    PDF page tools server using the official FastMCP mixin pattern.

    The server is an ordinary object: construct it, call ``start()`` to serve
    and ``stop()`` to shut down. Nothing is created at import time.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else self._load_configuration()
        self.version = get_version()
        self.mcp = FastMCP(SERVER_NAME)
        self.mixins: List[MCPMixin] = []
        self.policy = self._build_security_policy()
        self.running = False

        if self.config["debug"]:
            logging.getLogger().setLevel(logging.DEBUG)

        logger.info(f"🎬 MCP PDF Pages Server v{self.version}")

        self._initialize_mixins()
        self._register_server_tools()

        logger.info(f"✅ Server initialized with {len(self.mixins)} mixins")
        self._log_registration_summary()

    def _load_configuration(self) -> Dict[str, Any]:
        """Load server configuration from environment and defaults"""
        return {
            "max_pdf_size": int(os.getenv("MAX_PDF_SIZE", str(MAX_PDF_SIZE))),
            "cache_dir": Path(os.getenv("PDF_TEMP_DIR", DEFAULT_CACHE_DIR)),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
            "allowed_domains": parse_allowed_domains(os.getenv("ALLOWED_DOMAINS")),
            "allowed_paths": parse_allowed_paths(os.getenv("MCP_PDF_ALLOWED_PATHS")),
            "public_mode": bool(os.getenv("MCP_PUBLIC_MODE")),
            "transport": os.getenv("MCP_TRANSPORT", "stdio"),
            "host": os.getenv("MCP_HOST", "127.0.0.1"),
            "port": int(os.getenv("MCP_PORT", "8000")),
        }

    def _build_security_policy(self) -> SecurityPolicy:
        """Derive file access limits from this server's configuration, not the process environment"""
        return SecurityPolicy(
            max_pdf_size=self.config["max_pdf_size"],
            network_mode=self.config["transport"] == "http" or self.config.get("public_mode", False),
            allowed_paths=self.config.get("allowed_paths"),
            allowed_domains=list(self.config.get("allowed_domains", [])),
            cache_dir=Path(self.config["cache_dir"]),
        )

    def _initialize_mixins(self):
        """Create the tool mixins and register their tools without a name prefix"""
        mixin = PageRemovalMixin(policy=self.policy)
        # Tool names are part of the client contract, so no prefix is added.
        mixin.register_all(self.mcp)
        self.mixins.append(mixin)
        logger.info(f"✓ Initialized and registered {mixin.__class__.__name__}")

    def _register_server_tools(self):
        """Register server-level management tools"""

        @self.mcp.tool(name="server_info", description="Get server information")
        async def get_server_info() -> Dict[str, Any]:
            """Get server information including mixins and configuration"""
            return {
                "server_name": SERVER_NAME,
                "version": self.version,
                "architecture": "Official FastMCP Mixin Pattern",
                "mixins": [
                    {
                        "name": mixin.__class__.__name__,
                        "description": mixin.__class__.__doc__.strip().split('\n')[0] if mixin.__class__.__doc__ else "No description"
                    }
                    for mixin in self.mixins
                ],
                "configuration": {
                    "max_pdf_size_mb": self.config["max_pdf_size"] // (1024 * 1024),
                    "cache_directory": str(self.config["cache_dir"]),
                    "debug_mode": self.config["debug"],
                    "allowed_domains": self.config["allowed_domains"],
                    "transport": self.config["transport"],
                    "network_mode": self.policy.network_mode,
                }
            }

    def _log_registration_summary(self):
        logger.info("📋 Registration Summary:")
        logger.info(f"   • {len(self.mixins)} mixins loaded")
        logger.info("   • Server management tools: 1")

    def start(self):
        """Run the configured transport; blocks until the transport exits"""
        if self.running:
            raise RuntimeError("Server is already running")
        transport = self.config["transport"]
        self.running = True
        if transport == "http":
            logger.info(f"PDF MCP Server running on http://{self.config['host']}:{self.config['port']}")
            self.mcp.run(transport="http", host=self.config["host"], port=self.config["port"])
        else:
            logger.info("PDF MCP Server running on stdio")
            self.mcp.run(transport="stdio")

    def stop(self):
        """
        Mark the server stopped after the transport has returned.

        FastMCP closes its own transport when ``run`` returns; the server holds
        no other resources, so this only resets ``running`` and logs.
        """
        if not self.running:
            return
        self.running = False
        logger.info("PDF MCP Server stopped")


def create_server(config: Optional[Dict[str, Any]] = None) -> PDFPagesServer:
    """Factory function to create the PDF server instance"""
    return PDFPagesServer(config)


def main():
    """Main entry point for the MCP server"""
    server = None
    try:
        server = create_server()
        server.start()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error(f"Fatal error in main(): {e}")
        raise
    finally:
        if server is not None:
            server.stop()


if __name__ == "__main__":
    main()
