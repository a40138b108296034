"""
Flag metadata for the llama-server settings form.
Describes how each setting maps to a CLI flag and where the UI shows it.
"""

from typing import Any, Dict, List, Optional

from server_settings import (
    CacheType,
    LogFormat,
    PoolingType,
    RopeScaling,
    ServerSettings,
    SplitMode,
)

# ============================================
# TABS (display order)
# ============================================

CATEGORIES = [
    "Model",
    "Server",
    "Context",
    "GPU & Memory",
    "Performance",
    "Sampling",
    "Advanced",
    "API & Security",
]

# ============================================
# FLAG METADATA
# Keyed by settings field; "cli" is None for settings
# that are never passed to llama-server
# ============================================

SERVER_FLAGS = {
    # Executable
    "exe_path": {
        "cli": None,
        "type": "path",
        "label": "llama-server path",
        "description": 'Path to the llama-server binary. Use "llama-server" if it is on your PATH.',
    },
    # Model source
    "model_path": {
        "cli": "-m",
        "type": "path",
        "label": "Model File (.gguf)",
        "description": "Local GGUF model file",
    },
    "model_alias": {
        "cli": "-a",
        "type": "string",
        "label": "Model Alias",
        "description": "Model name reported by the API",
    },
    "model_dir": {
        "cli": "--models-dir",
        "type": "path",
        "label": "Model Directory",
        "description": "Directory of .gguf models the server can list and load on demand",
    },
    "model_url": {
        "cli": "-mu",
        "type": "string",
        "label": "Model URL",
        "description": "Download the model from this URL",
    },
    "hf_repo": {
        "cli": "-hfr",
        "type": "string",
        "label": "HuggingFace Repo",
        "description": "Hugging Face repository to download the model from (user/model)",
    },
    "hf_file": {
        "cli": "-hff",
        "type": "string",
        "label": "HuggingFace File",
        "description": "File inside the Hugging Face repository",
    },
    "hf_token": {
        "cli": "-hft",
        "type": "string",
        "label": "HuggingFace Token",
        "description": "Access token for gated models. Stored locally only.",
        "secret": True,
    },
    "chat_template": {
        "cli": "--chat-template",
        "type": "string",
        "label": "Chat Template",
        "description": "Override the model's built-in chat template",
    },
    "system_prompt": {
        "cli": "-sp",
        "type": "string",
        "label": "System Prompt",
        "description": "Default system prompt",
    },
    # Network
    "host": {
        "cli": "--host",
        "type": "string",
        "label": "Host",
        "description": "Use 0.0.0.0 to expose the server to the network",
    },
    "port": {
        "cli": "--port",
        "type": "int",
        "label": "Port",
        "description": "HTTP port",
    },
    "timeout": {
        "cli": "--timeout",
        "type": "int",
        "label": "Server Timeout (s)",
        "description": "Read/write timeout in seconds (0 = no timeout)",
    },
    "threads_http": {
        "cli": "--threads-http",
        "type": "int",
        "label": "HTTP Threads",
        "description": "Threads serving HTTP requests (0 = auto)",
    },
    # Context & batching
    "ctx_size": {
        "cli": "-c",
        "type": "int",
        "label": "Context Size",
        "description": "Total context length in tokens",
    },
    "predict": {
        "cli": "-n",
        "type": "int",
        "label": "Max Predict",
        "description": "Max tokens to predict (-1 = infinite)",
    },
    "batch_size": {
        "cli": "-b",
        "type": "int",
        "label": "Batch Size",
        "description": "Logical max batch size for prompt processing",
    },
    "ubatch_size": {
        "cli": "-ub",
        "type": "int",
        "label": "Micro-Batch Size",
        "description": "Physical batch size per compute call",
    },
    "parallel": {
        "cli": "-np",
        "type": "int",
        "label": "Parallel Sequences",
        "description": "Concurrent request slots, each gets ctx_size / parallel tokens",
    },
    "cont_batching": {
        "cli": "-cb",
        "type": "bool",
        "label": "Continuous Batching",
        "description": "Batch tokens from multiple requests together for higher throughput",
    },
    # GPU & memory
    "gpu_layers": {
        "cli": "-ngl",
        "type": "int",
        "label": "GPU Layers",
        "description": "Layers to offload to GPU (-1 = all, 0 = CPU only)",
    },
    "main_gpu": {
        "cli": "-mg",
        "type": "int",
        "label": "Main GPU",
        "description": "GPU index when using multiple GPUs",
    },
    "split_mode": {
        "cli": "-sm",
        "type": "enum",
        "options": SplitMode.options(),
        "label": "Split Mode",
        "description": "How to split the model across GPUs",
    },
    "tensor_split": {
        "cli": "-ts",
        "type": "string",
        "label": "Tensor Split",
        "description": "Per-GPU proportions, comma-separated (e.g. 3,1)",
    },
    "fit": {
        "cli": "--fit",
        "type": "bool",
        "label": "Auto-Fit",
        "description": "Pick the number of offloaded layers from available VRAM",
    },
    "mlock": {
        "cli": "--mlock",
        "type": "bool",
        "label": "Lock in RAM",
        "description": "Prevent the OS from swapping model weights to disk",
    },
    "no_mmap": {
        "cli": "--no-mmap",
        "type": "bool",
        "label": "Disable Memory Mapping",
        "description": "Load the entire model into RAM instead of memory mapping it",
    },
    "no_kv_offload": {
        "cli": "-nkvo",
        "type": "bool",
        "label": "No KV Offload",
        "description": "Keep the KV cache on CPU even when layers are on GPU",
    },
    "cache_type_k": {
        "cli": "-ctk",
        "type": "enum",
        "options": CacheType.options(),
        "label": "K Cache Type",
        "description": "KV cache data type for K",
    },
    "cache_type_v": {
        "cli": "-ctv",
        "type": "enum",
        "options": CacheType.options(),
        "label": "V Cache Type",
        "description": "KV cache data type for V",
    },
    # Performance
    "threads": {
        "cli": "-t",
        "type": "int",
        "label": "Threads",
        "description": "CPU threads for generation (0 = auto-detect)",
    },
    "threads_batch": {
        "cli": "-tb",
        "type": "int",
        "label": "Batch Threads",
        "description": "CPU threads for prompt processing (0 = auto-detect)",
    },
    "flash_attn": {
        "cli": "-fa",
        "type": "bool",
        "label": "Flash Attention",
        "description": "Faster, more memory-efficient attention; always passed as on/off",
    },
    "no_warmup": {
        "cli": "--no-warmup",
        "type": "bool",
        "label": "Skip Warmup",
        "description": "Skip the warmup run: faster startup, slower first request",
    },
    "check_tensors": {
        "cli": "--check-tensors",
        "type": "bool",
        "label": "Check Tensors",
        "description": "Validate tensor data on load",
    },
    # Sampling
    "temp": {
        "cli": "--temp",
        "type": "float",
        "label": "Temperature",
        "description": "0 = greedy, higher = more random",
    },
    "seed": {
        "cli": "-s",
        "type": "int",
        "label": "Seed",
        "description": "-1 = random seed each request",
    },
    "top_k": {
        "cli": "--top-k",
        "type": "int",
        "label": "Top-K",
        "description": "0 = disabled",
    },
    "top_p": {
        "cli": "--top-p",
        "type": "float",
        "label": "Top-P",
        "description": "1.0 = disabled",
    },
    "min_p": {
        "cli": "--min-p",
        "type": "float",
        "label": "Min-P",
        "description": "Minimum token probability relative to the top token",
    },
    "repeat_penalty": {
        "cli": "--repeat-penalty",
        "type": "float",
        "label": "Repeat Penalty",
        "description": "1.0 = no penalty",
    },
    "presence_penalty": {
        "cli": "--presence-penalty",
        "type": "float",
        "label": "Presence Penalty",
        "description": "0.0 = disabled",
    },
    "frequency_penalty": {
        "cli": "--frequency-penalty",
        "type": "float",
        "label": "Frequency Penalty",
        "description": "0.0 = disabled",
    },
    "grammar": {
        "cli": "--grammar",
        "type": "string",
        "label": "Grammar (BNF)",
        "description": "Constrain output with a BNF grammar",
    },
    "grammar_file": {
        "cli": "--grammar-file",
        "type": "path",
        "label": "Grammar File",
        "description": "Path to a .gbnf grammar file",
    },
    # RoPE
    "rope_scaling": {
        "cli": "--rope-scaling",
        "type": "enum",
        "options": RopeScaling.options(),
        "label": "Scaling Type",
        "description": "RoPE frequency scaling method",
    },
    "rope_freq_base": {
        "cli": "--rope-freq-base",
        "type": "float",
        "label": "Freq Base",
        "description": "0 = model default",
    },
    "rope_freq_scale": {
        "cli": "--rope-freq-scale",
        "type": "float",
        "label": "Freq Scale",
        "description": "0 = model default",
    },
    "yarn_orig_ctx": {
        "cli": "--yarn-orig-ctx",
        "type": "int",
        "label": "YaRN Orig Ctx",
        "description": "Original training context of the model (yarn only, 0 = model default)",
    },
    "yarn_ext_factor": {
        "cli": "--yarn-ext-factor",
        "type": "float",
        "label": "Extension Factor",
        "description": "Extrapolation mix factor (yarn only, -1 = model default)",
    },
    "yarn_attn_factor": {
        "cli": "--yarn-attn-factor",
        "type": "float",
        "label": "Attention Factor",
        "description": "Attention magnitude scale (yarn only)",
    },
    "yarn_beta_fast": {
        "cli": None,
        "type": "float",
        "label": "Beta Fast",
        "description": "YaRN low correction dimension",
    },
    "yarn_beta_slow": {
        "cli": None,
        "type": "float",
        "label": "Beta Slow",
        "description": "YaRN high correction dimension",
    },
    # LoRA
    "lora_adapters": {
        "cli": "--lora",
        "type": "lora",
        "label": "LoRA Adapters",
        "description": "Adapters applied in order; a scale other than 1.0 uses --lora-scaled",
    },
    # Speculative decoding
    "draft_model": {
        "cli": "-md",
        "type": "path",
        "label": "Draft Model",
        "description": "Smaller, faster model that drafts tokens for the main model to verify",
    },
    "draft_gpu_layers": {
        "cli": "-ngld",
        "type": "int",
        "label": "Draft GPU Layers",
        "description": "Layers of the draft model to offload to GPU",
    },
    "draft_tokens": {
        "cli": "--draft",
        "type": "int",
        "label": "Draft Tokens",
        "description": "Tokens drafted per step",
    },
    # API & security
    "api_key": {
        "cli": "--api-key",
        "type": "string",
        "label": "API Key",
        "description": "Clients must send this key as a Bearer token",
        "secret": True,
    },
    "api_key_file": {
        "cli": "--api-key-file",
        "type": "path",
        "label": "API Key File",
        "description": "File with one API key per line",
    },
    "metrics": {
        "cli": "--metrics",
        "type": "bool",
        "label": "Prometheus Metrics",
        "description": "Expose the /metrics endpoint",
    },
    "slots": {
        "cli": "--slots",
        "type": "bool",
        "label": "Slots Endpoint",
        "description": "Expose the /slots endpoint",
    },
    "slot_save_path": {
        "cli": "--slot-save-path",
        "type": "path",
        "label": "Slot Save Path",
        "description": "Directory for saved slot KV caches",
    },
    # Embedding
    "embedding": {
        "cli": "--embedding",
        "type": "bool",
        "label": "Enable Embeddings",
        "description": "Serve embedding requests instead of text generation",
    },
    "pooling": {
        "cli": "--pooling",
        "type": "enum",
        "options": PoolingType.options(),
        "label": "Pooling Type",
        "description": "Pooling for embeddings (only used with embeddings enabled)",
    },
    # Logging
    "log_format": {
        "cli": "--log-format",
        "type": "enum",
        "options": LogFormat.options(),
        "label": "Log Format",
        "description": "Server log output format",
    },
    "verbose": {
        "cli": "-v",
        "type": "bool",
        "label": "Verbose",
        "description": "Print detailed debug information to stderr",
    },
}

_SERVER_CATEGORIES = {
    "exe_path": "Model",
    "model_path": "Model",
    "model_alias": "Model",
    "model_dir": "Model",
    "model_url": "Model",
    "hf_repo": "Model",
    "hf_file": "Model",
    "hf_token": "Model",
    "chat_template": "Model",
    "system_prompt": "Model",
    "host": "Server",
    "port": "Server",
    "timeout": "Server",
    "threads_http": "Server",
    "ctx_size": "Context",
    "predict": "Context",
    "batch_size": "Context",
    "ubatch_size": "Context",
    "parallel": "Context",
    "cont_batching": "Context",
    "gpu_layers": "GPU & Memory",
    "main_gpu": "GPU & Memory",
    "split_mode": "GPU & Memory",
    "tensor_split": "GPU & Memory",
    "fit": "GPU & Memory",
    "mlock": "GPU & Memory",
    "no_mmap": "GPU & Memory",
    "no_kv_offload": "GPU & Memory",
    "cache_type_k": "GPU & Memory",
    "cache_type_v": "GPU & Memory",
    "threads": "Performance",
    "threads_batch": "Performance",
    "flash_attn": "Performance",
    "no_warmup": "Performance",
    "check_tensors": "Performance",
    "temp": "Sampling",
    "seed": "Sampling",
    "top_k": "Sampling",
    "top_p": "Sampling",
    "min_p": "Sampling",
    "repeat_penalty": "Sampling",
    "presence_penalty": "Sampling",
    "frequency_penalty": "Sampling",
    "grammar": "Sampling",
    "grammar_file": "Sampling",
    "rope_scaling": "Advanced",
    "rope_freq_base": "Advanced",
    "rope_freq_scale": "Advanced",
    "yarn_orig_ctx": "Advanced",
    "yarn_ext_factor": "Advanced",
    "yarn_attn_factor": "Advanced",
    "yarn_beta_fast": "Advanced",
    "yarn_beta_slow": "Advanced",
    "lora_adapters": "Advanced",
    "draft_model": "Advanced",
    "draft_gpu_layers": "Advanced",
    "draft_tokens": "Advanced",
    "embedding": "Advanced",
    "pooling": "Advanced",
    "api_key": "API & Security",
    "api_key_file": "API & Security",
    "metrics": "API & Security",
    "slots": "API & Security",
    "slot_save_path": "API & Security",
    "log_format": "API & Security",
    "verbose": "API & Security",
}

_DEFAULTS = ServerSettings().to_dict()

for _key, _meta in SERVER_FLAGS.items():
    _meta["category"] = _SERVER_CATEGORIES[_key]
    _meta["default"] = _DEFAULTS[_key]

# ============================================
# HELPER FUNCTIONS
# ============================================


def get_flag_metadata() -> Dict[str, Any]:
    """Get flag metadata for every setting"""
    return SERVER_FLAGS


def get_flags_by_category() -> List[Dict[str, Any]]:
    """
    Group flag metadata by UI tab.

    Returns:
        List of {"category": name, "flags": {field: metadata}} in tab order
    """
    groups = []
    for category in CATEGORIES:
        flags = {
            key: meta for key, meta in SERVER_FLAGS.items()
            if meta["category"] == category
        }
        groups.append({"category": category, "flags": flags})
    return groups


def find_setting_for_flag(cli_flag: str) -> Optional[str]:
    """Return the settings field rendered as ``cli_flag``, if any."""
    for key, meta in SERVER_FLAGS.items():
        if meta["cli"] == cli_flag:
            return key
    if cli_flag == "--lora-scaled":
        return "lora_adapters"
    return None
