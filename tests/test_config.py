"""tests for application settings."""

import json

from doc_canvas.core.config import (
    AppConfig,
    GenerationConfig,
    get_app_dir,
    get_config_path,
    load_config,
    save_config,
)


class TestAppDir:
    def test_env_override(self, app_home):
        """DOC_CANVAS_HOME picks the app directory and creates it."""
        assert get_app_dir() == app_home
        assert app_home.is_dir()
        assert get_config_path() == app_home / "config.json"


class TestLoadConfig:
    """tests for load_config / save_config."""

    def test_first_run_writes_defaults(self, app_home):
        config = load_config()
        assert config.llm.model == "opus"
        assert config.generation.summary_max_chars == 100
        assert config.image_gen.download_path == "Image/"
        written = json.loads((app_home / "config.json").read_text())
        assert written["imageGen"]["baseURL"] == "https://openrouter.ai/api/v1"
        assert written["generation"]["summaryMaxChars"] == 100

    def test_reads_camel_case(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text(json.dumps({
            "llm": {"model": "sonnet", "systemPrompt": "be brief"},
            "imageGen": {"apiKey": "k", "downloadPath": "/abs/images"},
        }))
        config = load_config(path)
        assert config.llm.model == "sonnet"
        assert config.llm.system_prompt == "be brief"
        assert config.image_gen.api_key == "k"
        assert config.image_gen.download_path == "/abs/images"
        assert config.generation.summary_max_chars == 100

    def test_broken_file_falls_back(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text("{oops")
        assert load_config(path) == AppConfig()

    def test_save_round_trip(self, temp_dir):
        config = AppConfig()
        config.generation.summary_max_chars = 40
        path = save_config(config, temp_dir / "nested" / "config.json")
        assert load_config(path).generation.summary_max_chars == 40


class TestDerived:
    def test_non_positive_summary_length(self):
        assert GenerationConfig(summaryMaxChars=0).effective_summary_max_chars == 100
        assert GenerationConfig(summary_max_chars=-5).effective_summary_max_chars == 100
        assert GenerationConfig(summaryMaxChars=60).effective_summary_max_chars == 60

    def test_image_root_relative_to_app_dir(self, temp_dir):
        assert AppConfig().image_root(temp_dir) == temp_dir / "Image"

    def test_image_root_absolute(self, temp_dir):
        config = AppConfig.model_validate({"imageGen": {"downloadPath": str(temp_dir / "pics")}})
        assert config.image_root() == temp_dir / "pics"
