import json

from symmetric_encryption import MAGIC
from symmetric_encryption.cli import main


def _config(tmp_path, inline_config):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(inline_config), encoding="utf-8")
    return str(path)


def test_encrypt_decrypt_files(tmp_path, inline_config):
    config = _config(tmp_path, inline_config)
    plain = tmp_path / "plain.txt"
    encrypted = tmp_path / "plain.txt.enc"
    decrypted = tmp_path / "plain.txt.out"
    plain.write_bytes(b"Hello World\n" * 1000)

    assert main(["encrypt", "--config", config, "--env", "development",
                 "-i", str(plain), "-o", str(encrypted), "--compress"]) == 0
    assert encrypted.read_bytes().startswith(MAGIC)

    assert main(["decrypt", "--config", config, "--env", "development",
                 "-i", str(encrypted), "-o", str(decrypted)]) == 0
    assert decrypted.read_bytes() == plain.read_bytes()


def test_unknown_environment_exits_with_error(tmp_path, inline_config, capsys):
    config = _config(tmp_path, inline_config)
    plain = tmp_path / "plain.txt"
    plain.write_bytes(b"data")

    assert main(["encrypt", "--config", config, "--env", "nope",
                 "-i", str(plain), "-o", str(tmp_path / "out")]) == 1
    assert "ERROR" in capsys.readouterr().err


def test_generate_rsa_key(capsys):
    assert main(["generate-rsa-key", "--bits", "1024"]) == 0
    assert "BEGIN RSA PRIVATE KEY" in capsys.readouterr().out


def test_generate_keys_refuses_overwrite(file_config, capsys):
    assert main(["generate-keys", "--config", str(file_config), "--env", "production"]) == 1
    assert "Refusing to overwrite" in capsys.readouterr().err

    assert main(["generate-keys", "--config", str(file_config), "--env", "production",
                 "--force"]) == 0
    assert "app_2025.key" in capsys.readouterr().out
