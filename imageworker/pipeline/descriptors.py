"""
Operation descriptors and the job configuration they arrive in.

Descriptors are immutable: default filling happens in `params_with`, which
returns a fresh dict and never touches the descriptor itself.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from imageworker.core.database import redact_url
from imageworker.core.exceptions import InvalidParameter, MissingParameter

Number = Union[float, str]


class OperationDescriptor(BaseModel):
    """One entry of the configured operation list."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    op: str

    # Output directives
    destination: Optional[str] = None  # local output filename
    destination_path: Optional[str] = None  # object store prefix
    version: str = "original"
    format: Optional[str] = None
    quality: Optional[int] = None
    strip: bool = True

    # Geometry
    width: Optional[int] = None
    height: Optional[int] = None
    bg_color: Optional[str] = Field(None, alias="background-color")

    # Colour adjustments
    brightness: Optional[float] = None
    saturation: Optional[float] = None
    hue: Optional[float] = None
    gamma: Optional[float] = None
    black_point: Optional[Number] = None
    white_point: Optional[Number] = None

    # Tiling
    num_tiles_width: Optional[int] = None
    num_tiles_height: Optional[int] = None
    merge: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "OperationDescriptor":
        """Validate one configured operation; a bad value fails this operation only."""
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            op = str(raw.get("op", ""))
            error = e.errors()[0]
            name = ".".join(str(part) for part in error["loc"]) or "op"
            if error["type"] == "missing":
                raise MissingParameter(op, [name]) from None
            raise InvalidParameter(op, name, error.get("input"), error["msg"]) from None

    def params(self) -> Dict[str, Any]:
        """All caller-supplied parameters, extras included, nulls dropped."""
        return self.model_dump(exclude_none=True)

    def params_with(self, defaults: Dict[str, Any]) -> Dict[str, Any]:
        """Merge `defaults` under the caller's values; the caller wins on conflict."""
        merged = dict(defaults)
        merged.update(self.params())
        return merged

    def require(self, *names: str) -> Dict[str, Any]:
        """Return the named parameters, raising MissingParameter if any is absent."""
        params = self.params()
        missing = [name for name in names if params.get(name) is None]
        if missing:
            raise MissingParameter(self.op, missing)
        return {name: params[name] for name in names}


class JobConfig(BaseModel):
    """A whole worker invocation: one source image and its operations."""

    source_image_url: str
    source_image_keypath: Optional[str] = None
    offer_id: Optional[int] = None
    change_request_id: Optional[int] = None
    disable_network: bool = False
    database_url: Optional[str] = None
    # Raw mappings: each one is validated when its operation runs
    operations: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "JobConfig":
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    def redacted(self) -> Dict[str, Any]:
        """Config as a dict safe to log."""
        data = self.model_dump(exclude_none=True)
        if self.database_url:
            data["database_url"] = redact_url(self.database_url)
        return data
