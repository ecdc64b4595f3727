"""
Побитовая запись и чтение потока.
Биты упаковываются старшим битом вперёд, последний байт дополняется нулями.
"""

import io
from typing import BinaryIO, Optional


BUFFER_SIZE = 8192


class BitWriter:
    def __init__(self, output: BinaryIO, buffer_size: int = BUFFER_SIZE):
        self.output = output
        self.buffer_size = buffer_size
        self.bits_written = 0
        self._byte = 0
        self._bit_count = 0
        self._pending = bytearray()

    def _commit(self):
        while self._bit_count >= 8:
            self._bit_count -= 8
            self._pending.append((self._byte >> self._bit_count) & 0xFF)
        self._byte &= (1 << self._bit_count) - 1

        if len(self._pending) >= self.buffer_size:
            self.output.write(self._pending)
            self._pending = bytearray()

    def write_bit(self, bit: int):
        self._byte = (self._byte << 1) | (1 if bit else 0)
        self._bit_count += 1
        self.bits_written += 1

        if self._bit_count == 8:
            self._commit()

    def write_bits(self, value: int, length: int):
        if length < 0 or value >> length:
            raise ValueError(f"value {value} does not fit in {length} bits")

        self._byte = (self._byte << length) | value
        self._bit_count += length
        self.bits_written += length
        self._commit()

    def write_code(self, code: str):
        if code:
            self.write_bits(int(code, 2), len(code))

    def flush(self) -> int:
        padding = 0

        if self._bit_count > 0:
            padding = 8 - self._bit_count
            self._pending.append((self._byte << padding) & 0xFF)
            self._byte = 0
            self._bit_count = 0

        if self._pending:
            self.output.write(self._pending)
            self._pending = bytearray()

        return padding


class BitReader:
    def __init__(self, data, bit_length: Optional[int] = None):
        self.data = data
        self.bit_length = 8 * len(data) if bit_length is None else bit_length
        self.position = 0

        if not 0 <= self.bit_length <= 8 * len(data):
            raise ValueError(
                f"bit length {self.bit_length} exceeds {len(data)} bytes of data")

    @property
    def bits_remaining(self) -> int:
        return self.bit_length - self.position

    def read_bit(self) -> int:
        if self.position >= self.bit_length:
            raise EOFError("bit stream exhausted")

        byte = self.data[self.position >> 3]
        bit = (byte >> (7 - (self.position & 7))) & 1
        self.position += 1
        return bit

    def read_bits(self, length: int) -> int:
        value = 0
        for _ in range(length):
            value = (value << 1) | self.read_bit()
        return value


def pack_bits(code: str) -> bytes:
    output = io.BytesIO()
    writer = BitWriter(output)
    writer.write_code(code)
    writer.flush()
    return output.getvalue()


def unpack_bits(data, length: int) -> str:
    if length == 0:
        return ''
    reader = BitReader(data, length)
    return format(reader.read_bits(length), f'0{length}b')
