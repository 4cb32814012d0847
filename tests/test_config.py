import pytest

from chainkit.config import CONFIG_ENV_VAR, config
from chainkit.logger import logger
from chainkit.utils import log_execution_time


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Write a TOML file and load it as the active configuration"""
    def _write(text: str):
        path = tmp_path / "config.toml"
        path.write_text(text)
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        config.reload()
        return config
    return _write


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


class TestConfig:
    def test_named_sections_inherit_shared_defaults(self, config_file):
        cfg = config_file(
            "[llm]\nmax_retries = 5\n\n"
            "[llm.openai]\nmodel = \"gpt-4o-mini\"\n\n"
            "[llm.local]\nmodel = \"llama3\"\nmax_retries = 0\n"
        )
        assert cfg.get_llm_config("openai").max_retries == 5
        assert cfg.get_llm_config("local").max_retries == 0

    def test_openai_is_the_default(self, config_file):
        cfg = config_file("[llm.openai]\nmodel = \"gpt-4o-mini\"\n")
        assert cfg.get_llm_config() == cfg.get_llm_config("openai")

    def test_unknown_name(self, config_file):
        cfg = config_file("[llm.openai]\nmodel = \"gpt-4o-mini\"\n")
        with pytest.raises(KeyError, match="openai"):
            cfg.get_llm_config("missing")

    def test_runnable_and_logging_sections(self, config_file):
        cfg = config_file("[runnable]\nmax_concurrency = 3\n\n[logging]\nlevel = \"DEBUG\"\n")
        assert cfg.runnable.max_concurrency == 3
        assert cfg.logging.level == "DEBUG"
        assert cfg.llm == {}

    def test_empty_file_gives_defaults(self, config_file):
        cfg = config_file("")
        assert cfg.runnable.max_concurrency is None
        assert cfg.logging.enable_file is False

    def test_invalid_toml(self, config_file):
        with pytest.raises(ValueError, match="Invalid TOML"):
            config_file("[llm\n")

    def test_invalid_model_section(self, config_file):
        with pytest.raises(ValueError, match="llm.broken"):
            config_file("[llm.broken]\ntemperature = 0.5\n")

    def test_invalid_runnable_section(self, config_file):
        with pytest.raises(ValueError, match="runnable"):
            config_file("[runnable]\nmax_concurrency = \"many\"\n")

    def test_missing_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "nope.toml"))
        with pytest.raises(FileNotFoundError):
            config.reload()


class TestLogExecutionTime:
    def test_sync_function(self, log_messages):
        @log_execution_time(log_level="DEBUG", include_result=True)
        def add(a, b):
            return a + b

        assert add(1, 2) == 3
        assert any("executed in" in m and "(result: 3)" in m for m in log_messages)

    @pytest.mark.asyncio
    async def test_async_function(self, log_messages):
        @log_execution_time(include_args=True)
        async def greet(name):
            return f"hi {name}"

        assert await greet("ada") == "hi ada"
        assert any("greet" in m and "('ada',)" in m for m in log_messages)

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_raised(self, log_messages):
        @log_execution_time()
        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await broken()
        assert any("failed after" in m and "boom" in m for m in log_messages)
