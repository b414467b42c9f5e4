from enum import Enum

import argclass

from imagestatus_mcp.backend_types import SystemContext


class ServerMode(str, Enum):
    STDIO = "stdio"
    HTTP = "http"


class HTTPGroup(argclass.Group):
    listen: str = argclass.Argument(default="127.0.0.1")
    port: int = argclass.Argument(default=9453)


class SystemContextGroup(argclass.Group):
    registries_conf: str = argclass.Argument(default="", help="Path to registries.conf used to expand short names")
    auth_file: str = argclass.Argument(default="", help="Path to the registry auth file")
    signature_policy: str = argclass.Argument(default="", help="Path to the signature policy file")
    short_name_mode: str = argclass.Argument(default="", help="Short name resolution mode (enforcing, permissive)")
    os: str = argclass.Argument(default="", help="Operating system to select from multi-platform images")
    arch: str = argclass.Argument(default="", help="Architecture to select from multi-platform images")
    variant: str = argclass.Argument(default="", help="Architecture variant to select from multi-platform images")

    def to_system_context(self) -> SystemContext:
        return SystemContext(
            registries_conf_path=self.registries_conf or None,
            auth_file_path=self.auth_file or None,
            signature_policy_path=self.signature_policy or None,
            short_name_mode=self.short_name_mode or None,
            os_choice=self.os or None,
            architecture_choice=self.arch or None,
            variant_choice=self.variant or None,
        )


class Parser(argclass.Parser):
    url: str = argclass.Argument(default="http://127.0.0.1:8341", help="Image store API base URL")
    token: str = argclass.Argument(default="", secret=True, help="Image store API authentication token")
    timeout: float = argclass.Argument(default=30.0, help="Image store request timeout in seconds")
    mode: ServerMode = argclass.EnumArgument(
        ServerMode, default=ServerMode.STDIO, lowercase=True, help="Server transport mode"
    )

    log_level: int = argclass.LogLevel
    http: HTTPGroup = HTTPGroup()
    system_context: SystemContextGroup = SystemContextGroup()
