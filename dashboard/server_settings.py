"""
Settings model for a llama-server instance.

One flat dataclass holds every option the control panel edits. The defaults
are picked so that a freshly constructed ``ServerSettings`` compiles to a
runnable command line once a model source is filled in.
"""

import copy
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class SettingEnum(str, Enum):
    """String-valued option whose parser never fails."""

    @classmethod
    def default(cls) -> "SettingEnum":
        return ENUM_DEFAULTS[cls]

    @classmethod
    def options(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def is_known(cls, value: Any) -> bool:
        if isinstance(value, cls):
            return True
        return isinstance(value, str) and value in cls._value2member_map_

    @classmethod
    def parse(cls, value: Any) -> "SettingEnum":
        """Return the member for ``value``, or the default if it is not a known token."""
        if isinstance(value, cls):
            return value
        if not cls.is_known(value):
            return cls.default()
        return cls(value)

    def encode(self) -> str:
        return self.value


class SplitMode(SettingEnum):
    NONE = "none"
    LAYER = "layer"
    ROW = "row"


class CacheType(SettingEnum):
    F16 = "f16"
    Q8_0 = "q8_0"
    Q4_0 = "q4_0"


class RopeScaling(SettingEnum):
    NONE = "none"
    LINEAR = "linear"
    YARN = "yarn"


class LogFormat(SettingEnum):
    TEXT = "text"
    JSON = "json"


class PoolingType(SettingEnum):
    NONE = "none"
    MEAN = "mean"
    CLS = "cls"
    LAST = "last"


ENUM_DEFAULTS = {
    SplitMode: SplitMode.LAYER,
    CacheType: CacheType.F16,
    RopeScaling: RopeScaling.NONE,
    LogFormat: LogFormat.TEXT,
    PoolingType: PoolingType.NONE,
}


@dataclass
class LoraAdapter:
    path: str = ""
    scale: float = 1.0

    @classmethod
    def from_dict(cls, data: Any) -> "LoraAdapter":
        if not isinstance(data, dict):
            raise TypeError(
                f"LoRA adapter must be an object, got {type(data).__name__}"
            )
        adapter = cls()
        if "path" in data:
            adapter.path = _decode_scalar("lora_adapters.path", str, data["path"])
        if "scale" in data:
            adapter.scale = _decode_scalar("lora_adapters.scale", float, data["scale"])
        return adapter

    def to_dict(self) -> dict:
        return {"path": self.path, "scale": self.scale}


@dataclass
class ServerSettings:
    # Executable
    exe_path: str = "llama-server"

    # Model
    model_path: str = ""
    model_dir: str = ""
    model_alias: str = ""
    model_url: str = ""
    hf_repo: str = ""
    hf_file: str = ""
    hf_token: str = ""
    chat_template: str = ""
    system_prompt: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    timeout: int = 0
    threads_http: int = 0

    # Context & batching
    ctx_size: int = 8192
    predict: int = -1
    batch_size: int = 2048
    ubatch_size: int = 512
    parallel: int = 1
    cont_batching: bool = True

    # GPU & memory
    gpu_layers: int = -1  # -1 = offload all layers
    split_mode: SplitMode = SplitMode.LAYER
    tensor_split: str = ""
    main_gpu: int = 0
    fit: bool = True
    mlock: bool = False
    no_mmap: bool = False
    no_kv_offload: bool = False
    cache_type_k: CacheType = CacheType.F16
    cache_type_v: CacheType = CacheType.F16

    # Performance (0 threads = auto-detect)
    threads: int = 0
    threads_batch: int = 0
    flash_attn: bool = True
    no_warmup: bool = False
    check_tensors: bool = False

    # Sampling
    temp: float = 0.8
    top_k: int = 40
    top_p: float = 0.95
    min_p: float = 0.05
    repeat_penalty: float = 1.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    seed: int = -1
    grammar: str = ""
    grammar_file: str = ""

    # RoPE
    rope_scaling: RopeScaling = RopeScaling.NONE
    rope_freq_base: float = 0.0
    rope_freq_scale: float = 0.0
    yarn_orig_ctx: int = 0
    yarn_ext_factor: float = -1.0
    yarn_attn_factor: float = 1.0
    yarn_beta_fast: float = 32.0
    yarn_beta_slow: float = 1.0

    # LoRA
    lora_adapters: List[LoraAdapter] = field(default_factory=list)

    # Speculative decoding
    draft_model: str = ""
    draft_gpu_layers: int = -1
    draft_tokens: int = 5

    # API & security
    api_key: str = ""
    api_key_file: str = ""
    metrics: bool = False
    slots: bool = False
    slot_save_path: str = ""

    # Embedding
    embedding: bool = False
    pooling: PoolingType = PoolingType.NONE

    # Logging
    log_format: LogFormat = LogFormat.TEXT
    verbose: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerSettings":
        """
        Build settings from a JSON document.

        Missing keys keep their defaults and unknown keys are ignored.
        Unknown enum tokens fall back to the enum default.

        Raises:
            TypeError: If a value has the wrong JSON type
        """
        if not isinstance(data, dict):
            raise TypeError(
                f"Settings document must be an object, got {type(data).__name__}"
            )

        values = {}
        for name, raw in data.items():
            if name not in FIELD_TYPES:
                logger.debug(f"Ignoring unknown setting: {name}")
                continue
            values[name] = decode_field(name, raw)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, SettingEnum):
                value = value.encode()
            elif f.name == "lora_adapters":
                value = [adapter.to_dict() for adapter in value]
            result[f.name] = value
        return result

    def assign(self, name: str, raw: Any):
        """Decode ``raw`` for field ``name`` and store it."""
        setattr(self, name, decode_field(name, raw))

    def copy(self) -> "ServerSettings":
        return copy.deepcopy(self)


FIELD_TYPES = {f.name: f.type for f in fields(ServerSettings)}


def decode_field(name: str, raw: Any) -> Any:
    """
    Convert a JSON value into the Python value stored in field ``name``.

    Raises:
        ValueError: If ``name`` is not a setting
        TypeError: If ``raw`` has the wrong type for the field
    """
    if name not in FIELD_TYPES:
        raise ValueError(f"Unknown setting: {name}")

    kind = FIELD_TYPES[name]

    if name == "lora_adapters":
        if not isinstance(raw, list):
            raise TypeError(f"lora_adapters must be a list, got {type(raw).__name__}")
        return [LoraAdapter.from_dict(item) for item in raw]

    if isinstance(kind, type) and issubclass(kind, SettingEnum):
        parsed = kind.parse(raw)
        if not kind.is_known(raw):
            logger.warning(
                f"Unrecognized {name} value {raw!r}, falling back to '{parsed.value}'"
            )
        return parsed

    return _decode_scalar(name, kind, raw)


def _decode_scalar(name: str, kind: type, raw: Any) -> Any:
    # bool is a subclass of int, so it has to be excluded from the numeric kinds
    if kind is bool:
        if isinstance(raw, bool):
            return raw
    elif kind is int:
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
    elif kind is float:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw)
    elif kind is str:
        if isinstance(raw, str):
            return raw

    raise TypeError(f"{name} must be {kind.__name__}, got {type(raw).__name__}")
