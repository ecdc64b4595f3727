"""
Определяет структуру файла .huff и методы чтения/записи заголовка.
"""

import os
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Tuple

from bitstream import pack_bits, unpack_bits
from frequency import ALPHABET_SIZE
from huffman import MAX_CODE_LENGTH


NAME_LENGTH = struct.Struct('<Q')
ENTRY_COUNT = struct.Struct('<i')
ENTRY_HEAD = struct.Struct('<BIB')
MAX_FREQUENCY = 0xFFFFFFFF


class ArchiveError(ValueError):
    pass


@dataclass
class CodeEntry:
    symbol: int
    frequency: int
    code: str


@dataclass
class ArchiveHeader:
    filename: str
    entries: List[CodeEntry] = field(default_factory=list)

    @property
    def codes(self) -> Dict[int, str]:
        return {entry.symbol: entry.code for entry in self.entries}

    @property
    def symbol_count(self) -> int:
        return sum(entry.frequency for entry in self.entries)

    @property
    def payload_bits(self) -> int:
        return sum(entry.frequency * len(entry.code) for entry in self.entries)

    @property
    def payload_size(self) -> int:
        return (self.payload_bits + 7) // 8


class ArchiveFormat:
    @staticmethod
    def build_header(filename: str, frequencies: Dict[int, int],
                     codes: Dict[int, str]) -> ArchiveHeader:
        entries = [CodeEntry(symbol, frequencies[symbol], codes[symbol])
                   for symbol in sorted(codes)]
        return ArchiveHeader(filename=filename, entries=entries)

    @staticmethod
    def write_header(output: BinaryIO, header: ArchiveHeader):
        try:
            filename_bytes = os.fsencode(header.filename)
        except UnicodeEncodeError:
            raise ArchiveError(f"Cannot encode filename {header.filename!r}") from None

        output.write(NAME_LENGTH.pack(len(filename_bytes)))
        output.write(filename_bytes)
        output.write(ENTRY_COUNT.pack(len(header.entries)))

        for entry in header.entries:
            ArchiveFormat._write_entry(output, entry)

    @staticmethod
    def _write_entry(output: BinaryIO, entry: CodeEntry):
        if not 0 < len(entry.code) <= MAX_CODE_LENGTH:
            raise ArchiveError(
                f"code for symbol {entry.symbol} has unsupported length {len(entry.code)}")
        if entry.frequency > MAX_FREQUENCY:
            raise ArchiveError(
                f"frequency of symbol {entry.symbol} does not fit in 32 bits")

        output.write(ENTRY_HEAD.pack(entry.symbol, entry.frequency, len(entry.code)))
        output.write(pack_bits(entry.code))

    @staticmethod
    def read_header(data) -> Tuple[ArchiveHeader, int]:
        pos = 0

        if pos + NAME_LENGTH.size > len(data):
            raise ArchiveError("Corrupted header: cannot read filename length")

        name_len = NAME_LENGTH.unpack_from(data, pos)[0]
        pos += NAME_LENGTH.size

        if pos + name_len > len(data):
            raise ArchiveError("Corrupted header: cannot read filename")

        filename = os.fsdecode(bytes(data[pos:pos + name_len]))
        pos += name_len

        if pos + ENTRY_COUNT.size > len(data):
            raise ArchiveError("Corrupted header: cannot read entry count")

        entry_count = ENTRY_COUNT.unpack_from(data, pos)[0]
        pos += ENTRY_COUNT.size

        if not 0 <= entry_count <= ALPHABET_SIZE:
            raise ArchiveError(f"Corrupted header: invalid entry count {entry_count}")

        header = ArchiveHeader(filename=filename)
        seen = set()

        for _ in range(entry_count):
            entry, pos = ArchiveFormat._read_entry(data, pos)
            if entry.symbol in seen:
                raise ArchiveError(f"Corrupted header: duplicate symbol {entry.symbol}")
            seen.add(entry.symbol)
            header.entries.append(entry)

        return header, pos

    @staticmethod
    def _read_entry(data, pos: int) -> Tuple[CodeEntry, int]:
        if pos + ENTRY_HEAD.size > len(data):
            raise ArchiveError("Corrupted entry: cannot read symbol record")

        symbol, frequency, code_len = ENTRY_HEAD.unpack_from(data, pos)
        pos += ENTRY_HEAD.size

        if code_len == 0:
            raise ArchiveError(f"Corrupted entry: empty code for symbol {symbol}")

        code_size = (code_len + 7) // 8
        if pos + code_size > len(data):
            raise ArchiveError(f"Corrupted entry: cannot read code for symbol {symbol}")

        code = unpack_bits(data[pos:pos + code_size], code_len)
        pos += code_size

        return CodeEntry(symbol=symbol, frequency=frequency, code=code), pos
