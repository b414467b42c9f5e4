"""Models exchanged with the image store and returned to MCP clients."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OCIImageConfig(BaseModel):
    """Execution parameters of an OCI image (the ``config`` object)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    user: str | None = Field(default=None, alias="User")
    exposed_ports: dict[str, dict[str, Any]] | None = Field(default=None, alias="ExposedPorts")
    env: list[str] | None = Field(default=None, alias="Env")
    entrypoint: list[str] | None = Field(default=None, alias="Entrypoint")
    cmd: list[str] | None = Field(default=None, alias="Cmd")
    volumes: dict[str, dict[str, Any]] | None = Field(default=None, alias="Volumes")
    working_dir: str | None = Field(default=None, alias="WorkingDir")
    labels: dict[str, str] | None = Field(default=None, alias="Labels")
    stop_signal: str | None = Field(default=None, alias="StopSignal")


class RootFS(BaseModel):
    type: str = "layers"
    diff_ids: list[str] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    created: str | None = None
    created_by: str | None = None
    author: str | None = None
    comment: str | None = None
    empty_layer: bool | None = None


class OCIImage(BaseModel):
    """OCI image configuration document as stored alongside the image."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    created: str | None = None
    author: str | None = None
    architecture: str = ""
    os: str = ""
    os_version: str | None = Field(default=None, alias="os.version")
    variant: str | None = None
    config: OCIImageConfig | None = None
    rootfs: RootFS = Field(default_factory=RootFS)
    history: list[HistoryEntry] | None = None


class ImageResult(BaseModel):
    """Store's description of one stored image."""

    id: str
    name: str = ""
    repo_tags: list[str] = Field(default_factory=list)
    repo_digests: list[str] = Field(default_factory=list)
    size: int | None = None
    digest: str = ""
    config_digest: str = ""
    user: str = ""
    labels: dict[str, str] | None = None
    oci_config: OCIImage | None = None

    @property
    def image_user(self) -> str:
        if self.user:
            return self.user
        if self.oci_config is not None and self.oci_config.config is not None:
            return self.oci_config.config.user or ""
        return ""


class ResolveNamesResponse(BaseModel):
    names: list[str] = Field(default_factory=list)


class SystemContext(BaseModel):
    """How the store should interpret names and select image variants."""

    model_config = ConfigDict(frozen=True)

    registries_conf_path: str | None = None
    auth_file_path: str | None = None
    signature_policy_path: str | None = None
    short_name_mode: str | None = None
    os_choice: str | None = None
    architecture_choice: str | None = None
    variant_choice: str | None = None

    def as_params(self) -> dict[str, str]:
        return {k: v for k, v in self.model_dump().items() if v}


class ImageSpec(BaseModel):
    image: str = ""
    annotations: dict[str, str] = Field(default_factory=dict)


class ImageStatusRequest(BaseModel):
    image: ImageSpec | None = None
    verbose: bool = False


class Image(BaseModel):
    id: str = Field(description="Image ID")
    repo_tags: list[str] = Field(default_factory=list, description="Tags pointing at the image")
    repo_digests: list[str] = Field(default_factory=list, description="Repository digests of the image")
    size: int = Field(default=0, description="Image size in bytes")
    uid: int | None = Field(default=None, description="Numeric user the image runs as")
    username: str | None = Field(default=None, description="User name the image runs as")


class ImageStatusResponse(BaseModel):
    image: Image | None = Field(default=None, description="Status of the image, null when it is not present")
    info: dict[str, str] | None = Field(default=None, description="Verbose image information")
