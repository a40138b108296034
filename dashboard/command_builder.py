"""
Command line construction for llama-server.

Turns a ``ServerSettings`` into the argument vector handed to the process
launcher. Options left at their "unset" value are omitted so the server
applies its own defaults; a handful of options are always passed.
"""

from decimal import Decimal
from typing import List

from server_settings import (
    CacheType,
    LogFormat,
    PoolingType,
    RopeScaling,
    ServerSettings,
    SplitMode,
)

# Differences smaller than this are float noise, not user intent
FLOAT_TOLERANCE = 0.001


def format_fixed(value: float) -> str:
    """Format a sampling value with two decimals (0.8 -> "0.80")."""
    return f"{value:.2f}"


def format_decimal(value: float) -> str:
    """
    Format a float as the shortest plain decimal.

    Integral values drop the fractional part (2.0 -> "2", 10000.0 -> "10000"),
    everything else uses the round-trip repr without exponent notation.
    """
    value = float(value)
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" in text:
        text = format(Decimal(text), "f")
    return text


def _differs(value: float, neutral: float) -> bool:
    return abs(value - neutral) > FLOAT_TOLERANCE


def _add_value(args: List[str], flag: str, value: str):
    """Append ``flag value`` when value is a non-empty string."""
    if value:
        args.extend([flag, value])


def _add_switch(args: List[str], flag: str, enabled: bool):
    """Append a bare flag when enabled."""
    if enabled:
        args.append(flag)


def build_server_args(settings: ServerSettings) -> List[str]:
    """
    Build the llama-server argument vector.

    Args:
        settings: Current server settings (not modified)

    Returns:
        Ordered list of CLI tokens, excluding the executable itself
    """
    args: List[str] = []

    split_mode = SplitMode.parse(settings.split_mode)
    cache_type_k = CacheType.parse(settings.cache_type_k)
    cache_type_v = CacheType.parse(settings.cache_type_v)
    rope_scaling = RopeScaling.parse(settings.rope_scaling)
    pooling = PoolingType.parse(settings.pooling)
    log_format = LogFormat.parse(settings.log_format)

    # Model source
    _add_value(args, "-m", settings.model_path)
    _add_value(args, "--models-dir", settings.model_dir)
    _add_value(args, "-a", settings.model_alias)
    _add_value(args, "-mu", settings.model_url)
    _add_value(args, "-hfr", settings.hf_repo)
    _add_value(args, "-hff", settings.hf_file)
    _add_value(args, "-hft", settings.hf_token)
    _add_value(args, "--chat-template", settings.chat_template)
    _add_value(args, "-sp", settings.system_prompt)

    # Server
    args.extend(["--host", settings.host])
    args.extend(["--port", str(settings.port)])
    if settings.timeout > 0:
        args.extend(["--timeout", str(settings.timeout)])
    if settings.threads_http > 0:
        args.extend(["--threads-http", str(settings.threads_http)])

    # Context
    args.extend(["-c", str(settings.ctx_size)])
    if settings.predict != -1:
        args.extend(["-n", str(settings.predict)])

    # Batching & parallelism
    args.extend(["-b", str(settings.batch_size)])
    args.extend(["-ub", str(settings.ubatch_size)])
    if settings.parallel > 1:
        args.extend(["-np", str(settings.parallel)])
    _add_switch(args, "-cb", settings.cont_batching)

    # GPU & memory
    if settings.gpu_layers != 0:
        args.extend(["-ngl", str(settings.gpu_layers)])
    if split_mode != SplitMode.LAYER:
        args.extend(["-sm", split_mode.encode()])
    _add_value(args, "-ts", settings.tensor_split)
    if settings.main_gpu > 0:
        args.extend(["-mg", str(settings.main_gpu)])
    if settings.fit:
        args.extend(["--fit", "on"])
    _add_switch(args, "--mlock", settings.mlock)
    _add_switch(args, "--no-mmap", settings.no_mmap)
    _add_switch(args, "-nkvo", settings.no_kv_offload)
    if cache_type_k != CacheType.F16:
        args.extend(["-ctk", cache_type_k.encode()])
    if cache_type_v != CacheType.F16:
        args.extend(["-ctv", cache_type_v.encode()])

    # Performance
    if settings.threads > 0:
        args.extend(["-t", str(settings.threads)])
    if settings.threads_batch > 0:
        args.extend(["-tb", str(settings.threads_batch)])
    # -fa takes on/off/auto, a bare flag is rejected
    args.extend(["-fa", "on" if settings.flash_attn else "off"])
    _add_switch(args, "--no-warmup", settings.no_warmup)
    _add_switch(args, "--check-tensors", settings.check_tensors)

    # Sampling
    args.extend(["--temp", format_fixed(settings.temp)])
    args.extend(["--top-k", str(settings.top_k)])
    args.extend(["--top-p", format_fixed(settings.top_p)])
    args.extend(["--min-p", format_fixed(settings.min_p)])
    if _differs(settings.repeat_penalty, 1.0):
        args.extend(["--repeat-penalty", format_fixed(settings.repeat_penalty)])
    if _differs(settings.presence_penalty, 0.0):
        args.extend(["--presence-penalty", format_fixed(settings.presence_penalty)])
    if _differs(settings.frequency_penalty, 0.0):
        args.extend(["--frequency-penalty", format_fixed(settings.frequency_penalty)])
    if settings.seed != -1:
        args.extend(["-s", str(settings.seed)])
    _add_value(args, "--grammar", settings.grammar)
    _add_value(args, "--grammar-file", settings.grammar_file)

    # RoPE
    if rope_scaling != RopeScaling.NONE:
        args.extend(["--rope-scaling", rope_scaling.encode()])
    if settings.rope_freq_base > 0:
        args.extend(["--rope-freq-base", format_decimal(settings.rope_freq_base)])
    if settings.rope_freq_scale > 0:
        args.extend(["--rope-freq-scale", format_decimal(settings.rope_freq_scale)])
    if rope_scaling == RopeScaling.YARN:
        if settings.yarn_orig_ctx > 0:
            args.extend(["--yarn-orig-ctx", str(settings.yarn_orig_ctx)])
        if _differs(settings.yarn_ext_factor, -1.0):
            args.extend(["--yarn-ext-factor", format_decimal(settings.yarn_ext_factor)])
        if _differs(settings.yarn_attn_factor, 1.0):
            args.extend(["--yarn-attn-factor", format_decimal(settings.yarn_attn_factor)])

    # LoRA adapters, applied in list order
    for adapter in settings.lora_adapters:
        if not adapter.path:
            continue
        if _differs(adapter.scale, 1.0):
            args.extend(["--lora-scaled", adapter.path, format_fixed(adapter.scale)])
        else:
            args.extend(["--lora", adapter.path])

    # Speculative decoding
    if settings.draft_model:
        args.extend(["-md", settings.draft_model])
        if settings.draft_gpu_layers != 0:
            args.extend(["-ngld", str(settings.draft_gpu_layers)])
        args.extend(["--draft", str(settings.draft_tokens)])

    # API & security
    _add_value(args, "--api-key", settings.api_key)
    _add_value(args, "--api-key-file", settings.api_key_file)
    _add_switch(args, "--metrics", settings.metrics)
    _add_switch(args, "--slots", settings.slots)
    _add_value(args, "--slot-save-path", settings.slot_save_path)

    # Embedding
    if settings.embedding:
        args.append("--embedding")
        if pooling != PoolingType.NONE:
            args.extend(["--pooling", pooling.encode()])

    # Logging
    if log_format != LogFormat.TEXT:
        args.extend(["--log-format", log_format.encode()])
    _add_switch(args, "-v", settings.verbose)

    return args


def build_command_preview(settings: ServerSettings) -> str:
    """
    Render the full command as a single display string.

    Only for display: arguments are not quoted, so the launcher always uses
    ``build_server_args`` rather than splitting this string.
    """
    return " ".join([settings.exe_path] + build_server_args(settings))
