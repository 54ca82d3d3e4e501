"""
配置加载测试
"""

from pathlib import Path

from snquery.config import BuilderConfig, load_config, write_default_config


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


# ==================== 单元测试 ====================

class TestLoadConfig:
    """测试配置文件查找顺序"""

    def test_defaults(self):
        config = load_config()
        assert config == BuilderConfig()
        assert config.max_visible_items == 15
        assert config.search_debounce == 0.25

    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path / "custom.toml", """
[builder]
max_visible_items = 5
use_advanced_date = false

[logging]
level = "debug"
""")
        config = load_config(path)
        assert config.max_visible_items == 5
        assert not config.use_advanced_date
        assert config.log_level == "DEBUG"
        assert config.show_seconds

    def test_env_variable(self, tmp_path, monkeypatch):
        path = _write(tmp_path / "env.toml", "[reference]\nsearch_limit = 7\n")
        monkeypatch.setenv("SNQUERY_CONFIG", str(path))
        assert load_config().search_limit == 7

    def test_explicit_beats_env(self, tmp_path, monkeypatch):
        explicit = _write(tmp_path / "a.toml", "[reference]\nsearch_limit = 3\n")
        env = _write(tmp_path / "b.toml", "[reference]\nsearch_limit = 9\n")
        monkeypatch.setenv("SNQUERY_CONFIG", str(env))
        assert load_config(explicit).search_limit == 3

    def test_home_config(self, tmp_path):
        _write(tmp_path / ".config" / "snquery" / "config.toml",
               "[storage]\nsaved_filters_path = \"~/filters.json\"\n")
        config = load_config()
        assert config.saved_filters_file() == tmp_path / "filters.json"

    def test_missing_explicit_path_falls_through(self, tmp_path):
        assert load_config(tmp_path / "missing.toml") == BuilderConfig()

    def test_non_positive_ints_ignored(self, tmp_path):
        path = _write(tmp_path / "c.toml", "[builder]\nmax_visible_items = 0\n")
        assert load_config(path).max_visible_items == 15

    def test_unknown_sections_kept(self, tmp_path):
        path = _write(tmp_path / "d.toml", "[theme]\naccent = \"cyan\"\n")
        assert load_config(path).extra == {"theme": {"accent": "cyan"}}

    def test_write_default(self, tmp_path):
        written = write_default_config(tmp_path / "nested" / "config.toml")
        assert written.is_file()
        assert load_config(written) == BuilderConfig()
