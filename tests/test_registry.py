import io
import threading

import pytest

import symmetric_encryption
from symmetric_encryption import (
    CipherSpec,
    DecryptionError,
    KeyStore,
    NotLoadedError,
    ProcessRegistry,
)


def test_unloaded_registry_fails():
    registry = ProcessRegistry()
    assert not registry.loaded
    with pytest.raises(NotLoadedError):
        registry.current_cipher()
    with pytest.raises(NotLoadedError):
        registry.encrypt("data")


def test_encrypt_decrypt_through_registry(registry):
    encrypted = registry.encrypt("Hello World\n")
    assert registry.decrypt(encrypted) == b"Hello World\n"
    assert registry.try_decrypt(encrypted) == b"Hello World\n"
    assert registry.current_cipher().name == "current"
    assert registry.cipher("current") is registry.current_cipher()


def test_try_decrypt_absent_for_foreign_value(inline_config):
    registry = ProcessRegistry()
    registry.load(inline_config, "development")
    assert registry.try_decrypt("not encrypted at all") is None
    with pytest.raises(DecryptionError):
        registry.decrypt("not encrypted at all")


def test_reload_swaps_keystore_and_old_snapshot_still_works(registry):
    old_store = registry.keystore
    old_ciphertext = registry.encrypt("before reload")

    new_store = KeyStore([CipherSpec.generate("v2")])
    assert registry.install(new_store) is old_store

    assert registry.keystore is new_store
    assert registry.current_cipher().name == "v2"
    # holders of the old snapshot are unaffected
    assert old_store.decrypt(old_ciphertext) == b"before reload"


def test_concurrent_readers_see_whole_keystores():
    stores = [
        KeyStore([CipherSpec.generate(f"a{i}"), CipherSpec.generate(f"b{i}")])
        for i in range(5)
    ]
    registry = ProcessRegistry(stores[0])
    seen = []
    stop = threading.Event()

    def read():
        while True:
            seen.append(registry.keystore.names)
            if stop.is_set():
                break

    threads = [threading.Thread(target=read) for _ in range(4)]
    for t in threads:
        t.start()
    for store in stores * 20:
        registry.install(store)
    stop.set()
    for t in threads:
        t.join()

    valid = [store.names for store in stores]
    assert seen
    assert all(names in valid for names in seen)


def test_stream_helpers(registry):
    stream = io.BytesIO()
    with registry.writer(stream, compress=True) as writer:
        writer.write("Hello World\n")
    stream.seek(0)
    with registry.reader(stream) as reader:
        assert reader.read() == b"Hello World\n"


def test_reset(registry):
    registry.reset()
    with pytest.raises(NotLoadedError):
        registry.keystore


def test_module_level_api(inline_config):
    registry = symmetric_encryption.default_registry
    previous = registry.keystore if registry.loaded else None
    try:
        symmetric_encryption.load(inline_config, "development")
        encrypted = symmetric_encryption.encrypt("Hello World\n")
        assert isinstance(encrypted, str)
        assert symmetric_encryption.decrypt(encrypted) == b"Hello World\n"
        assert symmetric_encryption.try_decrypt("junk!") is None
        assert symmetric_encryption.current_cipher() is symmetric_encryption.cipher()
    finally:
        if previous is None:
            registry.reset()
        else:
            registry.install(previous)
