"""
Главный класс для сжатия и разжатия файлов кодом Хаффмана.
"""

import io
import mmap
import os
from contextlib import contextmanager
from typing import BinaryIO, Optional, Tuple

from bitstream import BitReader, BitWriter
from frequency import DEFAULT_WORKERS, count_frequencies
from huff_format import ArchiveError, ArchiveFormat, ArchiveHeader
from huffman import HuffmanTree


EXTENSION = '.huff'
DEFAULT_ARCHIVE_NAME = 'encrypted' + EXTENSION


@contextmanager
def map_file(path: str):
    with open(path, 'rb') as f:
        size = os.fstat(f.fileno()).st_size

        if size == 0:
            yield b''
            return

        mapping = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
        try:
            yield mapping
        finally:
            mapping.close()


class Archiver:
    def __init__(self, workers: int = DEFAULT_WORKERS, verbose: bool = True):
        self.workers = workers
        self.verbose = verbose

    def _report(self, message: str, end: str = '\n'):
        if self.verbose:
            print(message, end=end)

    def encode_stream(self, data, filename: str, output: BinaryIO) -> ArchiveHeader:
        # iterating a memoryview yields ints for bytes and mmap alike
        with memoryview(data) as view:
            frequencies = count_frequencies(view, self.workers)

            tree = HuffmanTree()
            tree.build(frequencies)

            header = ArchiveFormat.build_header(filename, frequencies, tree.codes)
            ArchiveFormat.write_header(output, header)

            codes = {symbol: (int(code, 2), len(code))
                     for symbol, code in tree.codes.items()}

            writer = BitWriter(output)
            for byte in view:
                writer.write_bits(*codes[byte])
            writer.flush()

        return header

    def decode_stream(self, data) -> Tuple[ArchiveHeader, bytes]:
        header, pos = ArchiveFormat.read_header(data)

        payload_size = len(data) - pos
        if payload_size < header.payload_size:
            raise ArchiveError(
                f"Truncated payload: expected {header.payload_size} bytes, found {payload_size}")
        if payload_size > header.payload_size:
            raise ArchiveError(
                f"Unexpected {payload_size - header.payload_size} bytes after payload")

        try:
            tree = HuffmanTree.from_codes(header.codes)
            reader = BitReader(data[pos:], header.payload_bits)
            decoded = tree.decode(reader, header.symbol_count)
        except ValueError as e:
            raise ArchiveError(f"Corrupted archive: {e}") from None

        return header, decoded

    def encode_bytes(self, data: bytes, filename: str) -> bytes:
        output = io.BytesIO()
        self.encode_stream(data, filename, output)
        return output.getvalue()

    def decode_bytes(self, archive: bytes) -> Tuple[str, bytes]:
        header, decoded = self.decode_stream(archive)
        return header.filename, decoded

    def encode_file(self, input_path: str,
                    archive_path: str = DEFAULT_ARCHIVE_NAME) -> str:
        if not os.path.isfile(input_path):
            raise FileNotFoundError(f"Input file {input_path} not found")

        if os.path.exists(archive_path) and os.path.samefile(input_path, archive_path):
            raise ValueError(f"Archive path {archive_path} is the input file")

        self._report(f"Encoding {input_path}...", end=" ")

        with map_file(input_path) as data, open(archive_path, 'wb') as f:
            header = self.encode_stream(data, input_path, f)
            archive_size = f.tell()

        original_size = header.symbol_count
        ratio = (archive_size / original_size * 100) if original_size > 0 else 0
        self._report(f"OK ({ratio:.1f}%)")
        self._report(f"Archive created: {archive_path}")
        self._report(f"Total: {original_size} -> {archive_size} bytes, "
                     f"{len(header.entries)} symbols")

        return archive_path

    def _check_archive(self, archive_path: str):
        if not archive_path.endswith(EXTENSION):
            raise ArchiveError(
                f"Invalid file format: {archive_path} (expected {EXTENSION} file)")

        if not os.path.isfile(archive_path):
            raise FileNotFoundError(f"Archive {archive_path} not found")

    def decode_file(self, archive_path: str, output_dir: Optional[str] = None) -> str:
        self._check_archive(archive_path)

        with map_file(archive_path) as data:
            header, decoded = self.decode_stream(data)

        if output_dir is not None:
            os.makedirs(output_dir, exist_ok=True)
            output_path = os.path.join(output_dir, os.path.basename(header.filename))
        else:
            output_path = header.filename

        self._report(f"Extracting {output_path}...", end=" ")

        with open(output_path, 'wb') as f:
            f.write(decoded)

        self._report("OK")
        return output_path

    def list_archive(self, archive_path: str):
        self._check_archive(archive_path)

        with map_file(archive_path) as data:
            header, pos = ArchiveFormat.read_header(data)
            archive_size = len(data)

        original_size = header.symbol_count
        ratio = (archive_size / original_size * 100) if original_size > 0 else 0

        print(f"File:       {header.filename}")
        print(f"Original:   {original_size} bytes")
        print(f"Archive:    {archive_size} bytes ({ratio:.1f}%)")
        print(f"Header:     {pos} bytes, {len(header.entries)} symbols")
        print()
        print(f"{'Symbol':<8} {'Char':<6} {'Frequency':>12} {'Bits':>6}  Code")
        print("-" * 80)

        for entry in header.entries:
            char = chr(entry.symbol) if 0x20 < entry.symbol < 0x7f else ''
            print(f"{entry.symbol:<8} {char:<6} {entry.frequency:>12} "
                  f"{len(entry.code):>6}  {entry.code}")
