import asyncio
import logging
import os
import sys

from imagestatus_mcp.arguments import Parser
from imagestatus_mcp.server import amain


def main() -> None:
    parser = Parser(
        config_files=[os.getenv("IMAGESTATUS_MCP_CONFIG", "~/.config/imagestatus/mcp.ini")],
        auto_env_var_prefix="IMAGESTATUS_MCP_",
    )
    parser.parse_args()

    logging.basicConfig(level=parser.log_level, format="[%(levelname)s] %(message)s", stream=sys.stderr)
    try:
        asyncio.run(amain(parser))
    except KeyboardInterrupt:
        logging.info("Gracefully exited on keyboard interrupt")


if __name__ == "__main__":
    main()
