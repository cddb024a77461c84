"""
Streaming encryption and decryption of arbitrarily large payloads.

This module provides:
- StreamHeader: Optional self-describing prefix of an encrypted stream
- CompressStage / DecompressStage: zlib transforms
- Pipeline: Explicit chain of byte transform stages
- Writer: Encrypts (and optionally compresses) into a byte sink
- Reader: Decrypts (and optionally decompresses) from a byte source

Header layout (binary, all big-endian):
- 4 bytes: magic b'@EnC'
- 1 byte: compression flag (0 or 1)
- 2 bytes: len_name (unsigned short, 0 when no cipher name is recorded)
- N bytes: cipher name, UTF-8

Body: AES-CBC ciphertext of the (optionally compressed) payload, PKCS7
padded at the very end. Without a header the stream is body only.
"""

from __future__ import annotations

import logging
import os
import struct
import zlib
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator, List, Optional, Sequence, Union

from .crypto import CipherSpec
from .errors import ConfigError, DecryptionError, UnknownCipherError
from .keystore import KeyStore

logger = logging.getLogger(__name__)

MAGIC = b"@EnC"
DEFAULT_BUFFER_SIZE: int = 64 * 1024

Target = Union[str, "os.PathLike[str]", BinaryIO]


def _read_exact(source: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, retrying short reads until EOF."""
    data = b""
    while len(data) < size:
        chunk = source.read(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def _is_path(target: object) -> bool:
    return isinstance(target, (str, os.PathLike))


@dataclass(frozen=True)
class StreamHeader:
    """Self-describing stream prefix naming compression and cipher."""

    compressed: bool = False
    cipher_name: Optional[str] = None

    def to_bytes(self) -> bytes:
        name = (self.cipher_name or "").encode("utf-8")
        if len(name) > 0xFFFF:
            raise ConfigError("Cipher name too long for stream header")
        header = bytearray()
        header += MAGIC
        header += struct.pack("B", 1 if self.compressed else 0)
        header += struct.pack(">H", len(name))
        header += name
        return bytes(header)

    @classmethod
    def read_after_magic(cls, source: BinaryIO) -> StreamHeader:
        """
        Parse the rest of a header whose magic was already consumed.

        Raises:
            DecryptionError: If the header is truncated or malformed
        """
        fixed = _read_exact(source, 3)
        if len(fixed) != 3:
            raise DecryptionError("Truncated stream header")
        flag, name_len = struct.unpack(">BH", fixed)
        if flag not in (0, 1):
            raise DecryptionError(f"Invalid compression flag in stream header: {flag}")
        name = _read_exact(source, name_len)
        if len(name) != name_len:
            raise DecryptionError("Truncated stream header")
        try:
            cipher_name = name.decode("utf-8") if name else None
        except UnicodeDecodeError:
            raise DecryptionError("Invalid cipher name in stream header")
        return cls(compressed=bool(flag), cipher_name=cipher_name)


class CompressStage:
    """zlib deflate."""

    def __init__(self, level: int = zlib.Z_DEFAULT_COMPRESSION) -> None:
        self._compressor = zlib.compressobj(level)

    def update(self, data: bytes) -> bytes:
        return self._compressor.compress(data)

    def finalize(self) -> bytes:
        return self._compressor.flush()


class DecompressStage:
    """zlib inflate."""

    def __init__(self) -> None:
        self._decompressor = zlib.decompressobj()

    def update(self, data: bytes) -> bytes:
        try:
            return self._decompressor.decompress(data)
        except zlib.error as e:
            raise DecryptionError(f"Decompression failed: {e}") from e

    def finalize(self) -> bytes:
        try:
            tail = self._decompressor.flush()
        except zlib.error as e:
            raise DecryptionError(f"Decompression failed: {e}") from e
        if not self._decompressor.eof:
            raise DecryptionError("Truncated compressed stream")
        if self._decompressor.unused_data:
            raise DecryptionError("Unexpected data after compressed stream")
        return tail


class Pipeline:
    """Stages applied in order; each stage's output feeds the next."""

    def __init__(self, stages: Sequence) -> None:
        self._stages = list(stages)

    def update(self, data: bytes) -> bytes:
        for stage in self._stages:
            data = stage.update(data)
        return data

    def finalize(self) -> bytes:
        data = b""
        for stage in self._stages:
            data = stage.update(data) + stage.finalize()
        return data


class Writer:
    """
    Encrypting writer over a binary sink.

    Not thread-safe. Always close it (or use it as a context manager): the
    final padded block is only written by ``close``.
    """

    def __init__(
        self,
        sink: BinaryIO,
        cipher: CipherSpec,
        header: bool = True,
        compress: bool = False,
        close_sink: bool = False,
    ) -> None:
        """
        Initialize Writer and write the header if enabled.

        Args:
            sink: Binary stream receiving the ciphertext
            cipher: Cipher used to encrypt the payload
            header: Prefix the stream with a StreamHeader
            compress: Deflate the payload before encryption
            close_sink: Close ``sink`` when the writer is closed
        """
        self._sink = sink
        self._cipher = cipher
        self._compress = compress
        self._close_sink = close_sink
        self._closed = False
        self._size = 0

        stages: List = []
        if compress:
            stages.append(CompressStage())
        stages.append(cipher.encryptor())
        self._pipeline = Pipeline(stages)

        if header:
            sink.write(StreamHeader(compressed=compress, cipher_name=cipher.name).to_bytes())

    @classmethod
    def open(
        cls,
        target: Target,
        keystore: KeyStore,
        cipher_name: Optional[str] = None,
        header: bool = True,
        compress: bool = False,
    ) -> Writer:
        """
        Open a Writer on a file path or an already open binary stream.

        A path is opened (and later closed) by the writer; a stream is left
        open on close so the caller can still use it.
        """
        cipher = keystore.select(cipher_name)
        if not _is_path(target):
            return cls(target, cipher, header=header, compress=compress)

        sink = open(target, "wb")
        try:
            return cls(sink, cipher, header=header, compress=compress, close_sink=True)
        except BaseException:
            sink.close()
            raise

    @property
    def cipher(self) -> CipherSpec:
        return self._cipher

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size(self) -> int:
        """Number of plaintext bytes accepted so far."""
        return self._size

    def write(self, data: Union[str, bytes]) -> int:
        """
        Encrypt and write ``data``.

        Returns:
            Number of plaintext bytes accepted
        """
        if self._closed:
            raise ValueError("write to closed Writer")
        if isinstance(data, str):
            data = data.encode("utf-8")
        out = self._pipeline.update(bytes(data))
        if out:
            self._sink.write(out)
        self._size += len(data)
        return len(data)

    def writelines(self, lines: Iterable[Union[str, bytes]]) -> None:
        for line in lines:
            self.write(line)

    def flush(self) -> None:
        """Flush the sink. Bytes of an incomplete block stay buffered."""
        if not self._closed:
            self._sink.flush()

    def close(self) -> None:
        """Write the final padded block and release the sink."""
        if self._closed:
            return
        self._closed = True
        try:
            self._sink.write(self._pipeline.finalize())
            self._sink.flush()
        finally:
            if self._close_sink:
                self._sink.close()

    def __enter__(self) -> Writer:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Reader:
    """
    Decrypting reader over a binary source.

    Supports bulk ``read`` and lazy line iteration. Not thread-safe.
    """

    def __init__(
        self,
        source: BinaryIO,
        cipher: Optional[CipherSpec] = None,
        keystore: Optional[KeyStore] = None,
        header: bool = True,
        compress: bool = False,
        cipher_name: Optional[str] = None,
        close_source: bool = False,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        """
        Initialize Reader, detecting and parsing a header if enabled.

        When a header is found its compression flag and cipher name replace
        the caller's ``compress`` / ``cipher_name`` / ``cipher`` options.

        Args:
            source: Binary stream holding the ciphertext
            cipher: Cipher to use when the stream does not name one
            keystore: Key store used to resolve cipher names
            header: Detect a StreamHeader; disable for legacy unheadered data
            compress: Inflate the payload when there is no header
            cipher_name: Cipher to look up in ``keystore`` when there is no header
            close_source: Close ``source`` when the reader is closed
            buffer_size: Ciphertext bytes read from ``source`` at a time

        Raises:
            ConfigError: If neither ``cipher`` nor ``keystore`` is given
            UnknownCipherError: If the named cipher is not available
            DecryptionError: If the header is truncated
        """
        self._source = source
        self._close_source = close_source
        self._buffer_size = buffer_size
        self._closed = False
        self._finished = False
        self._buffer = bytearray()
        self._header: Optional[StreamHeader] = None
        self._pending = b""

        if header:
            magic = _read_exact(source, len(MAGIC))
            if magic == MAGIC:
                self._header = StreamHeader.read_after_magic(source)
                compress = self._header.compressed
                cipher_name = self._header.cipher_name
                logger.debug("Stream header found: compressed=%s", compress)
            else:
                # not a header, the bytes belong to the ciphertext
                self._pending = magic

        self._cipher = self._resolve_cipher(cipher, keystore, cipher_name)
        self._seen_ciphertext = bool(self._pending)

        stages: List = [self._cipher.decryptor()]
        if compress:
            stages.append(DecompressStage())
        self._pipeline = Pipeline(stages)

    @staticmethod
    def _resolve_cipher(
        cipher: Optional[CipherSpec],
        keystore: Optional[KeyStore],
        cipher_name: Optional[str],
    ) -> CipherSpec:
        if keystore is not None:
            if cipher_name is None and cipher is not None:
                return cipher
            return keystore.select(cipher_name)
        if cipher is None:
            raise ConfigError("Reader needs a cipher or a key store")
        if cipher_name is not None and cipher_name != cipher.name:
            raise UnknownCipherError(f"Unknown cipher: {cipher_name}")
        return cipher

    @classmethod
    def open(
        cls,
        source: Target,
        keystore: Optional[KeyStore] = None,
        cipher: Optional[CipherSpec] = None,
        cipher_name: Optional[str] = None,
        header: bool = True,
        compress: bool = False,
    ) -> Reader:
        """Open a Reader on a file path or an already open binary stream."""
        if not _is_path(source):
            return cls(
                source,
                cipher=cipher,
                keystore=keystore,
                header=header,
                compress=compress,
                cipher_name=cipher_name,
            )

        stream = open(source, "rb")
        try:
            return cls(
                stream,
                cipher=cipher,
                keystore=keystore,
                header=header,
                compress=compress,
                cipher_name=cipher_name,
                close_source=True,
            )
        except BaseException:
            stream.close()
            raise

    @property
    def cipher(self) -> CipherSpec:
        return self._cipher

    @property
    def header(self) -> Optional[StreamHeader]:
        return self._header

    @property
    def closed(self) -> bool:
        return self._closed

    def _fill(self) -> bool:
        """Decrypt the next chunk into the buffer. False once the source is drained."""
        if self._finished:
            return False
        chunk = self._source.read(self._buffer_size)
        if self._pending:
            chunk = self._pending + (chunk or b"")
            self._pending = b""
        if chunk:
            self._seen_ciphertext = True
            self._buffer += self._pipeline.update(chunk)
        else:
            self._finished = True
            # An empty body is an empty payload
            if self._seen_ciphertext:
                self._buffer += self._pipeline.finalize()
        return True

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed Reader")

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` plaintext bytes, everything if ``size`` < 0."""
        self._check_open()
        if size is None or size < 0:
            while self._fill():
                pass
            size = len(self._buffer)
        else:
            while len(self._buffer) < size and self._fill():
                pass
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def readline(self) -> bytes:
        """Read one line including its newline; b'' at end of stream."""
        self._check_open()
        start = 0
        while True:
            index = self._buffer.find(b"\n", start)
            if index >= 0:
                end = index + 1
                break
            start = len(self._buffer)
            if not self._fill():
                end = len(self._buffer)
                break
        line = bytes(self._buffer[:end])
        del self._buffer[:end]
        return line

    def readlines(self) -> List[bytes]:
        return list(self)

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        line = self.readline()
        if not line:
            raise StopIteration
        return line

    def eof(self) -> bool:
        """True when no plaintext remains."""
        self._check_open()
        while not self._buffer and self._fill():
            pass
        return not self._buffer

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close_source:
            self._source.close()

    def __enter__(self) -> Reader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
