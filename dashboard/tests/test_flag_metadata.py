import pytest
from command_builder import build_server_args
from flag_metadata import (
    CATEGORIES,
    SERVER_FLAGS,
    find_setting_for_flag,
    get_flag_metadata,
    get_flags_by_category,
)
from server_settings import (
    CacheType,
    LogFormat,
    LoraAdapter,
    PoolingType,
    RopeScaling,
    ServerSettings,
    SplitMode,
)


def _is_number(token):
    try:
        float(token)
        return True
    except ValueError:
        return False


@pytest.fixture
def everything_on():
    """Settings that make every optional flag appear."""
    s = ServerSettings()
    for name in ("model_path", "model_dir", "model_alias", "model_url", "hf_repo",
                 "hf_file", "hf_token", "chat_template", "system_prompt",
                 "tensor_split", "grammar", "grammar_file", "draft_model",
                 "api_key", "api_key_file", "slot_save_path"):
        setattr(s, name, "value")
    for name in ("mlock", "no_mmap", "no_kv_offload", "no_warmup", "check_tensors",
                 "metrics", "slots", "embedding", "verbose"):
        setattr(s, name, True)
    s.timeout = 30
    s.threads_http = 2
    s.predict = 128
    s.parallel = 2
    s.main_gpu = 1
    s.threads = 4
    s.threads_batch = 4
    s.seed = 7
    s.repeat_penalty = 1.2
    s.presence_penalty = 0.1
    s.frequency_penalty = 0.1
    s.split_mode = SplitMode.ROW
    s.cache_type_k = CacheType.Q8_0
    s.cache_type_v = CacheType.Q8_0
    s.rope_scaling = RopeScaling.YARN
    s.rope_freq_base = 10000.0
    s.rope_freq_scale = 0.5
    s.yarn_orig_ctx = 4096
    s.yarn_ext_factor = 1.0
    s.yarn_attn_factor = 2.0
    s.lora_adapters = [LoraAdapter("/a.gguf"), LoraAdapter("/b.gguf", 0.5)]
    s.pooling = PoolingType.MEAN
    s.log_format = LogFormat.JSON
    return s


class TestFlagMetadata:
    def test_every_setting_described(self):
        assert set(SERVER_FLAGS) == set(ServerSettings().to_dict())

    def test_every_emitted_flag_described(self, everything_on):
        args = build_server_args(everything_on)
        flags = [a for a in args if a.startswith("-") and not _is_number(a)]
        assert len(flags) > 50
        for flag in flags:
            assert find_setting_for_flag(flag) is not None, flag

    def test_cli_flags_unique(self):
        flags = [m["cli"] for m in SERVER_FLAGS.values() if m["cli"]]
        assert len(flags) == len(set(flags))

    def test_enum_options(self):
        assert SERVER_FLAGS["cache_type_k"]["options"] == ["f16", "q8_0", "q4_0"]
        assert SERVER_FLAGS["pooling"]["options"] == ["none", "mean", "cls", "last"]

    def test_defaults_match_settings(self):
        assert SERVER_FLAGS["port"]["default"] == 8080
        assert SERVER_FLAGS["split_mode"]["default"] == "layer"

    def test_secrets_marked(self):
        assert SERVER_FLAGS["api_key"].get("secret") is True
        assert SERVER_FLAGS["hf_token"].get("secret") is True

    def test_lookup(self):
        assert find_setting_for_flag("-ngl") == "gpu_layers"
        assert find_setting_for_flag("--lora-scaled") == "lora_adapters"
        assert find_setting_for_flag("--not-a-flag") is None

    def test_get_flag_metadata(self):
        assert get_flag_metadata() is SERVER_FLAGS


class TestCategories:
    def test_groups_in_tab_order(self):
        groups = get_flags_by_category()
        assert [g["category"] for g in groups] == CATEGORIES

    def test_every_setting_in_one_group(self):
        seen = []
        for group in get_flags_by_category():
            seen.extend(group["flags"])
        assert sorted(seen) == sorted(SERVER_FLAGS)

    def test_model_tab(self):
        model = get_flags_by_category()[0]["flags"]
        assert "model_path" in model
        assert "hf_repo" in model
