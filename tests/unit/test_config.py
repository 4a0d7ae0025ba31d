"""Unit tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from xtctl.core.config import (
    DEFAULT_LOCK_PATH,
    AppConfig,
    ToolsConfig,
    XtctlConfig,
    get_example_config,
    init_config,
)
from xtctl.core.context import create_context
from xtctl.core.exceptions import ConfigurationError
from xtctl.core.output import Verbosity


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("XTCTL_IPTABLES", "XTCTL_IP6TABLES", "XTCTL_LOCK_PATH"):
        monkeypatch.delenv(name, raising=False)


class TestToolsConfig:
    """Tests for ToolsConfig validation."""

    def test_defaults(self):
        tools = ToolsConfig()
        assert tools.iptables_path is None
        assert tools.ip6tables_path is None
        assert tools.lock_path == DEFAULT_LOCK_PATH
        assert tools.default_table == "filter"

    def test_relative_lock_path_rejected(self):
        with pytest.raises(ValueError):
            ToolsConfig(lock_path=Path("xtables.lock"))

    def test_default_table_must_be_one_word(self):
        with pytest.raises(ValueError):
            ToolsConfig(default_table="nat filter")
        with pytest.raises(ValueError):
            ToolsConfig(default_table="  ")


class TestXtctlConfigLoad:
    """Tests for YAML loading."""

    def test_load(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "tools:\n"
            "  iptables_path: /usr/sbin/iptables-legacy\n"
            "  lock_path: /tmp/xt.lock\n"
            "  default_table: nat\n"
        )
        config = XtctlConfig.load(path)
        assert config.tools.iptables_path == Path("/usr/sbin/iptables-legacy")
        assert config.tools.lock_path == Path("/tmp/xt.lock")
        assert config.tools.default_table == "nat"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc:
            XtctlConfig.load(tmp_path / "missing.yaml")
        assert "xtctl config init" in exc.value.hint

    def test_load_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tools: [unclosed\n")
        with pytest.raises(ConfigurationError):
            XtctlConfig.load(path)

    def test_load_invalid_value(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tools:\n  lock_path: relative.lock\n")
        with pytest.raises(ConfigurationError):
            XtctlConfig.load(path)

    def test_load_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            XtctlConfig.load(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert XtctlConfig.load(path) == XtctlConfig()

    def test_load_or_default_missing(self, tmp_path):
        assert XtctlConfig.load_or_default(tmp_path / "missing.yaml") == XtctlConfig()

    def test_to_yaml(self):
        data = yaml.safe_load(XtctlConfig().to_yaml())
        assert data["tools"]["lock_path"] == str(DEFAULT_LOCK_PATH)
        assert "iptables_path" not in data["tools"]


class TestAppConfig:
    """Tests for environment overrides."""

    def test_config_values(self, tmp_path):
        config = AppConfig(config=XtctlConfig(tools=ToolsConfig(
            iptables_path=Path("/opt/iptables"),
            lock_path=tmp_path / "a.lock",
        )))
        assert config.iptables_path == Path("/opt/iptables")
        assert config.ip6tables_path is None
        assert config.lock_path == tmp_path / "a.lock"
        assert config.default_table == "filter"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XTCTL_IPTABLES", "/env/iptables")
        monkeypatch.setenv("XTCTL_LOCK_PATH", str(tmp_path / "env.lock"))
        config = AppConfig(config=XtctlConfig(tools=ToolsConfig(
            iptables_path=Path("/opt/iptables"),
        )))
        assert config.iptables_path == Path("/env/iptables")
        assert config.lock_path == tmp_path / "env.lock"

    def test_missing_config_file_uses_defaults(self, tmp_path):
        config = AppConfig(config_path=tmp_path / "missing.yaml")
        assert config.lock_path == DEFAULT_LOCK_PATH


class TestInitConfig:
    """Tests for init_config and the example file."""

    def test_example_config_is_valid(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(get_example_config())
        config = XtctlConfig.load(path)
        assert config.tools.lock_path == DEFAULT_LOCK_PATH

    def test_init_writes_file(self, tmp_path):
        path = tmp_path / "etc" / "xtctl" / "config.yaml"
        init_config(path)
        assert path.exists()
        assert "lock_path" in path.read_text()

    def test_init_refuses_overwrite(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tools: {}\n")
        with pytest.raises(ConfigurationError):
            init_config(path)

    def test_init_force_overwrites(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tools: {}\n")
        init_config(path, force=True)
        assert "lock_path" in path.read_text()


class TestCreateContext:
    """Tests for create_context."""

    def test_verbosity_levels(self, tmp_path):
        assert create_context(config=tmp_path / "c.yaml").verbosity == Verbosity.NORMAL
        assert create_context(verbose=2, config=tmp_path / "c.yaml").is_debug
        assert create_context(verbose=5, config=tmp_path / "c.yaml").verbosity == Verbosity.DEBUG
        assert create_context(quiet=True, config=tmp_path / "c.yaml").is_quiet

    def test_lazy_config(self, tmp_path):
        ctx = create_context(config=tmp_path / "missing.yaml")
        assert ctx.config.default_table == "filter"
