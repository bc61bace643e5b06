from pathlib import Path
from typing import Dict, Literal, Optional, Tuple, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_PROFILE_NAME = "default"

StreamKindName = Literal["video", "audio", "subtitle"]


def _normalize_kind(value):
    # Legacy configs spell subtitle streams "sub"
    if isinstance(value, str) and value.lower() in ("sub", "subs", "subtitles"):
        return "subtitle"
    return value


class SettingsPatch(BaseModel):
    """Partial encoding settings carried by a rule's ``result``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    codec: Optional[str] = None
    crf: Optional[str] = None
    bitrate: Optional[str] = None
    size: Optional[str] = None
    preset: Optional[str] = None
    tune: Optional[str] = None
    tonemap: Optional[bool] = None
    skip: Optional[bool] = None

    @field_validator("crf", "bitrate", "size", "preset", "tune", mode="before")
    @classmethod
    def stringify_numbers(cls, v):
        if isinstance(v, bool):
            raise ValueError("expected a string or number")
        if isinstance(v, (int, float)):
            return str(v)
        return v


class OutputSettings(SettingsPatch):
    """Resolved per-stream encoding settings. ``codec == "copy"`` means passthrough."""

    codec: str = "copy"

    @property
    def is_copy(self) -> bool:
        return self.codec == "copy"

    def merged(self, patch: SettingsPatch) -> "OutputSettings":
        """Overwrite every field the patch sets, keep the rest."""
        updates = {}
        for name in SettingsPatch.model_fields:
            value = getattr(patch, name)
            if value is not None:
                updates[name] = value
        if not updates:
            return self
        return self.model_copy(update=updates)


class RuleClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    property: str
    # Kept as a free string: an unknown operator invalidates one rule, not the whole config
    operator: str
    value: Union[bool, int, float, str]


class Rule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: StreamKindName = Field(validation_alias=AliasChoices("kind", "type"))
    description: Optional[str] = None
    clauses: Tuple[RuleClause, ...] = Field(default=(), validation_alias=AliasChoices("clauses", "rules"))
    result: SettingsPatch = Field(default_factory=SettingsPatch)

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        return _normalize_kind(v)

    @field_validator("clauses", mode="before")
    @classmethod
    def none_means_unconditional(cls, v):
        return () if v is None else v

    @field_validator("result", mode="before")
    @classmethod
    def none_means_empty_result(cls, v):
        return {} if v is None else v


class SelectionRule(Rule):
    """A stream-selection rule. The kind is implied by the selection block it sits in."""

    kind: Optional[StreamKindName] = Field(default=None, validation_alias=AliasChoices("kind", "type"))


class KindSelection(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary: Optional[Tuple[SelectionRule, ...]] = None
    allow_secondary: bool = Field(default=False, validation_alias=AliasChoices("allow_secondary", "allowSecondary"))
    secondary: Optional[Tuple[SelectionRule, ...]] = None


class SelectionPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    video: Optional[KindSelection] = None
    audio: Optional[KindSelection] = None
    subtitle: Optional[KindSelection] = Field(default=None, validation_alias=AliasChoices("subtitle", "sub"))

    def for_kind(self, kind: str) -> Optional[KindSelection]:
        return getattr(self, kind, None)


class PathMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_: str = Field(validation_alias=AliasChoices("from", "from_"))
    to: str = ""


class FileRename(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str = Field(validation_alias=AliasChoices("pattern", "regex"))
    replacement: str = Field(default="", validation_alias=AliasChoices("replacement", "substitution"))


class EncodingProfile(BaseModel):
    """A named policy bundle: path mapping, stream selection and encoder rules.

    Frozen all the way down so concurrent jobs sharing a profile cannot
    observe each other's changes.
    """

    model_config = ConfigDict(frozen=True)

    extension: str = "mkv"
    path_mappings: Tuple[PathMapping, ...] = Field(
        default=(), validation_alias=AliasChoices("path_mappings", "pathMappings")
    )
    file_renames: Tuple[FileRename, ...] = Field(
        default=(), validation_alias=AliasChoices("file_renames", "fileRenames")
    )
    delay_minutes: float = Field(
        default=0.0, ge=0, validation_alias=AliasChoices("delay_minutes", "delayMinutes", "delay")
    )
    selection: SelectionPolicy = Field(default_factory=SelectionPolicy)
    encoder_rules: Tuple[Rule, ...] = Field(
        default=(), validation_alias=AliasChoices("encoder_rules", "encoderRules", "encoder")
    )

    @field_validator("extension", mode="before")
    @classmethod
    def strip_extension_dot(cls, v):
        if v is None or v == "":
            return "mkv"
        return str(v).lstrip(".")

    @field_validator("path_mappings", "file_renames", "encoder_rules", mode="before")
    @classmethod
    def none_means_empty(cls, v):
        return () if v is None else v

    @field_validator("delay_minutes", mode="before")
    @classmethod
    def none_means_no_delay(cls, v):
        return 0.0 if v is None else v


class GeneralConfig(BaseModel):
    concurrency: int = Field(default=2, gt=0)
    data_dir: Path = Path("/data")
    transcode_dir: Path = Path("/transcode")
    output_dir: Path = Path("/out")
    debug: bool = False
    log_path: Optional[str] = None
    progress_interval_s: float = Field(default=60.0, gt=0)
    clean_temp_on_start: bool = True
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    profiles: Dict[str, EncodingProfile]

    @model_validator(mode="after")
    def require_default_profile(self):
        if DEFAULT_PROFILE_NAME not in self.profiles:
            raise ValueError(f"profiles must define a '{DEFAULT_PROFILE_NAME}' profile")
        return self
