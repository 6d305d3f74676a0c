from labelconv.logging_config import LOG_BACKUP_COUNT, build_logging_config


def test_logging_config_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("LABELCONV_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LABELCONV_LOG_LEVEL", "debug")
    monkeypatch.setenv("LABELCONV_LOG_FILE", "app.log")

    config = build_logging_config()

    assert config["handlers"]["file"]["filename"] == str(tmp_path / "logs" / "app.log")
    assert config["handlers"]["file"]["backupCount"] == LOG_BACKUP_COUNT
    assert config["handlers"]["access_file"]["filename"] == str(tmp_path / "logs" / "labelconv-access.log")
    assert config["loggers"]["labelconv"]["level"] == "DEBUG"
    assert config["loggers"]["uvicorn.access"]["handlers"] == ["access_stream", "access_file"]


def test_logging_config_defaults(monkeypatch):
    for name in ("LABELCONV_LOG_DIR", "LABELCONV_LOG_LEVEL", "LABELCONV_LOG_FILE", "LABELCONV_ACCESS_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)

    config = build_logging_config()

    assert config["root"]["level"] == "INFO"
    assert config["handlers"]["file"]["filename"].endswith("labelconv.log")
    assert config["formatters"]["default"]["()"] == "uvicorn.logging.DefaultFormatter"
