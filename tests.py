import io
import os
import random
import shutil
import struct
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from itertools import permutations

from archiver import Archiver
from bitstream import BitReader, BitWriter, pack_bits, unpack_bits
from frequency import FrequencyCounter, count_frequencies, partition
from huff_format import ArchiveError, ArchiveFormat, ArchiveHeader, CodeEntry
from huffman import HuffmanNode, HuffmanTree, PriorityQueue
from main import main


SAMPLE_TEXT = b"The quick brown fox jumps over the lazy dog. " * 20


class RecordingQueue(PriorityQueue):
    def __init__(self):
        super().__init__()
        self.extracted = []
        self.minimums = []

    def extract_min(self):
        self.minimums.append(min(self.weights()))
        node = super().extract_min()
        self.extracted.append(node.weight)
        return node


class FailingCounter(FrequencyCounter):
    def _count_range(self, data, start, end):
        if start > 0:
            raise MemoryError(f"cannot count range {start}:{end}")
        super()._count_range(data, start, end)


def walk_postorder(root):
    nodes = []
    stack = [root] if root is not None else []
    while stack:
        node = stack.pop()
        nodes.append(node)
        if node.left is not None:
            stack.append(node.left)
        if node.right is not None:
            stack.append(node.right)

    nodes.reverse()
    return nodes


class TestFrequencyCounter(unittest.TestCase):
    def test_counts_symbols(self):
        freq = count_frequencies(b"abracadabra", workers=1)
        self.assertEqual(freq, {97: 5, 98: 2, 99: 1, 100: 1, 114: 2})

    def test_empty_data(self):
        self.assertEqual(count_frequencies(b"", workers=4), {})

    def test_same_result_for_any_worker_count(self):
        random.seed(7)
        data = bytes(random.randint(0, 255) for _ in range(5003))
        expected = count_frequencies(data, workers=1)

        for workers in (2, 3, 4, 7, 16):
            self.assertEqual(count_frequencies(data, workers=workers), expected)

        self.assertEqual(sum(expected.values()), len(data))

    def test_partition_covers_input_once(self):
        self.assertEqual(partition(10, 3), [(0, 3), (3, 6), (6, 10)])

        ranges = partition(1001, 4)
        self.assertEqual(ranges[0][0], 0)
        self.assertEqual(ranges[-1][1], 1001)
        for (_, end), (start, _) in zip(ranges, ranges[1:]):
            self.assertEqual(end, start)

    def test_invalid_worker_count(self):
        with self.assertRaises(ValueError):
            count_frequencies(b"abc", workers=0)

    def test_worker_error_propagates(self):
        with self.assertRaises(MemoryError):
            FailingCounter(4).count(bytes(range(256)) * 4)

    def test_counts_memoryview(self):
        data = b"abracadabra" * 10
        with memoryview(data) as view:
            self.assertEqual(count_frequencies(view, workers=3),
                             count_frequencies(data, workers=1))


class TestPriorityQueue(unittest.TestCase):
    def test_extracts_in_weight_order(self):
        queue = PriorityQueue()
        for weight in (5, 1, 4, 2, 3):
            queue.insert(HuffmanNode(symbol=weight, weight=weight))

        order = [queue.extract_min().weight for _ in range(5)]
        self.assertEqual(order, [1, 2, 3, 4, 5])
        self.assertEqual(len(queue), 0)

    def test_ties_keep_insertion_order(self):
        queue = PriorityQueue()
        for symbol in (30, 10, 20):
            queue.insert(HuffmanNode(symbol=symbol, weight=1))

        self.assertEqual([queue.extract_min().symbol for _ in range(3)], [30, 10, 20])

    def test_empty_queue(self):
        with self.assertRaises(IndexError):
            PriorityQueue().extract_min()

    def test_capacity(self):
        queue = PriorityQueue(capacity=2)
        queue.insert(HuffmanNode(symbol=1, weight=1))
        queue.insert(HuffmanNode(symbol=2, weight=1))
        with self.assertRaises(OverflowError):
            queue.insert(HuffmanNode(symbol=3, weight=1))


class TestHuffmanTree(unittest.TestCase):
    def build(self, data):
        tree = HuffmanTree()
        tree.build(count_frequencies(data, workers=1))
        return tree

    def test_prefix_free(self):
        tree = self.build(SAMPLE_TEXT)
        for a, b in permutations(tree.codes.values(), 2):
            self.assertFalse(b.startswith(a), f"{a} is a prefix of {b}")

    def test_weight_conservation(self):
        tree = self.build(SAMPLE_TEXT)
        self.assertEqual(tree.root.weight, len(SAMPLE_TEXT))

        for node in walk_postorder(tree.root):
            if not node.is_leaf:
                self.assertEqual(node.weight, node.left.weight + node.right.weight)

    def test_greedy_merge(self):
        queue = RecordingQueue()
        tree = HuffmanTree()
        tree.build(count_frequencies(SAMPLE_TEXT, workers=1), queue=queue)

        self.assertEqual(queue.extracted, queue.minimums)
        self.assertEqual(len(queue.extracted), 2 * len(tree.codes) - 1)

    def test_tie_break_is_deterministic(self):
        tree = HuffmanTree()
        tree.build({1: 5, 2: 5, 3: 5})
        self.assertEqual(tree.codes, {3: '0', 1: '10', 2: '11'})

    def test_two_symbols(self):
        tree = self.build(b"AAAABBBB")
        self.assertEqual(tree.codes, {0x41: '0', 0x42: '1'})

    def test_single_symbol(self):
        tree = self.build(b"\x41" * 1000)
        self.assertTrue(tree.root.is_leaf)
        self.assertEqual(tree.root.weight, 1000)
        self.assertEqual(tree.codes, {0x41: '0'})

    def test_empty_input(self):
        tree = self.build(b"")
        self.assertIsNone(tree.root)
        self.assertEqual(tree.codes, {})

    def test_skewed_frequencies(self):
        freq = {}
        a, b = 1, 1
        for symbol in range(40):
            freq[symbol] = a
            a, b = b, a + b

        tree = HuffmanTree()
        tree.build(freq)
        self.assertEqual(max(len(code) for code in tree.codes.values()), 39)

    def test_rebuild_from_codes(self):
        tree = self.build(SAMPLE_TEXT)
        rebuilt = HuffmanTree.from_codes(tree.codes)

        output = io.BytesIO()
        writer = BitWriter(output)
        for byte in SAMPLE_TEXT:
            writer.write_code(tree.codes[byte])
        bits = writer.bits_written
        writer.flush()

        reader = BitReader(output.getvalue(), bits)
        self.assertEqual(rebuilt.decode(reader, len(SAMPLE_TEXT)), SAMPLE_TEXT)

    def test_rebuild_rejects_prefix_codes(self):
        with self.assertRaises(ValueError):
            HuffmanTree.from_codes({1: '0', 2: '01'})
        with self.assertRaises(ValueError):
            HuffmanTree.from_codes({1: '01', 2: '0'})
        with self.assertRaises(ValueError):
            HuffmanTree.from_codes({1: ''})
        with self.assertRaises(ValueError):
            HuffmanTree.from_codes({1: '02'})

    def test_decode_rejects_unknown_path(self):
        tree = HuffmanTree.from_codes({0x41: '0'})
        with self.assertRaises(ValueError):
            tree.decode(BitReader(b"\x80", 1), 1)

    def test_decode_rejects_short_stream(self):
        tree = HuffmanTree.from_codes({0x41: '0', 0x42: '1'})
        with self.assertRaises(ValueError):
            tree.decode(BitReader(b"\x00", 4), 5)


class TestBitStream(unittest.TestCase):
    def test_flush_pads_low_bits(self):
        output = io.BytesIO()
        writer = BitWriter(output)
        for bit in (1, 0, 1):
            writer.write_bit(bit)

        self.assertEqual(writer.flush(), 5)
        self.assertEqual(output.getvalue(), b"\xa0")

    def test_full_bytes_have_no_padding(self):
        output = io.BytesIO()
        writer = BitWriter(output)
        writer.write_bits(0xAB, 8)

        self.assertEqual(writer.flush(), 0)
        self.assertEqual(output.getvalue(), b"\xab")

    def test_write_bits_across_bytes(self):
        output = io.BytesIO()
        writer = BitWriter(output)
        for _ in range(3):
            writer.write_bits(0b1111, 4)
        writer.flush()

        self.assertEqual(output.getvalue(), b"\xff\xf0")
        self.assertEqual(writer.bits_written, 12)

    def test_buffered_output(self):
        output = io.BytesIO()
        writer = BitWriter(output, buffer_size=2)
        writer.write_bits(0xFFFF, 16)
        self.assertEqual(output.getvalue(), b"\xff\xff")

        writer.write_bits(0, 8)
        self.assertEqual(output.getvalue(), b"\xff\xff")

        writer.flush()
        self.assertEqual(output.getvalue(), b"\xff\xff\x00")

    def test_write_bits_rejects_oversized_value(self):
        writer = BitWriter(io.BytesIO())
        with self.assertRaises(ValueError):
            writer.write_bits(4, 2)

    def test_reader_msb_first(self):
        reader = BitReader(b"\xa0\x01")
        self.assertEqual([reader.read_bit() for _ in range(3)], [1, 0, 1])
        self.assertEqual(reader.bits_remaining, 13)
        self.assertEqual(reader.read_bits(13), 1)

        with self.assertRaises(EOFError):
            reader.read_bit()

    def test_reader_bit_length(self):
        reader = BitReader(b"\xff", 3)
        self.assertEqual(reader.read_bits(3), 0b111)

        with self.assertRaises(ValueError):
            BitReader(b"\xff", 9)

    def test_pack_code(self):
        self.assertEqual(pack_bits('101'), b"\xa0")
        self.assertEqual(pack_bits('111111111'), b"\xff\x80")
        self.assertEqual(unpack_bits(b"\xff\x80", 9), '111111111')
        self.assertEqual(unpack_bits(b"\x40", 2), '01')


class TestArchiveFormat(unittest.TestCase):
    def test_two_symbol_layout(self):
        archive = Archiver(verbose=False).encode_bytes(b"AAAABBBB", "ab.txt")

        expected = (
            struct.pack('<Q', 6) + b"ab.txt" +
            struct.pack('<i', 2) +
            struct.pack('<BIB', 0x41, 4, 1) + b"\x00" +
            struct.pack('<BIB', 0x42, 4, 1) + b"\x80" +
            b"\x0f"
        )
        self.assertEqual(archive, expected)

    def test_header_round_trip(self):
        header = ArchiveHeader(filename="data.bin", entries=[
            CodeEntry(symbol=7, frequency=3, code='0'),
            CodeEntry(symbol=200, frequency=1, code='1000000001'),
            CodeEntry(symbol=255, frequency=2, code='11'),
        ])
        output = io.BytesIO()
        ArchiveFormat.write_header(output, header)
        data = output.getvalue()

        read_header, pos = ArchiveFormat.read_header(data)
        self.assertEqual(read_header, header)
        self.assertEqual(pos, len(data))
        self.assertEqual(read_header.symbol_count, 6)
        self.assertEqual(read_header.payload_bits, 17)
        self.assertEqual(read_header.payload_size, 3)

    def test_truncated_header(self):
        archive = Archiver(verbose=False).encode_bytes(SAMPLE_TEXT, "sample.txt")
        _, header_size = ArchiveFormat.read_header(archive)

        for cut in range(header_size):
            with self.assertRaises(ArchiveError):
                ArchiveFormat.read_header(archive[:cut])

    def test_invalid_entry_count(self):
        data = struct.pack('<Q', 1) + b"x" + struct.pack('<i', 300)
        with self.assertRaises(ArchiveError):
            ArchiveFormat.read_header(data)

    def test_duplicate_symbol(self):
        data = (struct.pack('<Q', 1) + b"x" + struct.pack('<i', 2) +
                struct.pack('<BIB', 1, 1, 1) + b"\x00" +
                struct.pack('<BIB', 1, 1, 1) + b"\x80")
        with self.assertRaises(ArchiveError):
            ArchiveFormat.read_header(data)

    def test_zero_length_code(self):
        data = (struct.pack('<Q', 1) + b"x" + struct.pack('<i', 1) +
                struct.pack('<BIB', 1, 1, 0))
        with self.assertRaises(ArchiveError):
            ArchiveFormat.read_header(data)

    def test_frequency_overflow(self):
        header = ArchiveHeader(filename="big", entries=[
            CodeEntry(symbol=0, frequency=1 << 32, code='0'),
        ])
        with self.assertRaises(ArchiveError):
            ArchiveFormat.write_header(io.BytesIO(), header)

    def test_unencodable_filename(self):
        header = ArchiveHeader(filename="bad\ud800.txt")
        with self.assertRaises(ArchiveError):
            ArchiveFormat.write_header(io.BytesIO(), header)


class TestCodec(unittest.TestCase):
    def setUp(self):
        self.archiver = Archiver(verbose=False)

    def round_trip(self, data, filename="file.bin"):
        archive = self.archiver.encode_bytes(data, filename)
        name, decoded = self.archiver.decode_bytes(archive)
        self.assertEqual(name, filename)
        self.assertEqual(decoded, data)
        return archive

    def test_text(self):
        archive = self.round_trip(SAMPLE_TEXT, "fox.txt")
        self.assertLess(len(archive), len(SAMPLE_TEXT))

    def test_all_byte_values(self):
        self.round_trip(bytes(range(256)) * 10)

    def test_random_data(self):
        random.seed(42)
        self.round_trip(bytes(random.randint(0, 255) for _ in range(3000)))

    def test_single_repeated_byte(self):
        archive = self.round_trip(b"\x41" * 1000, "a.txt")
        header, pos = ArchiveFormat.read_header(archive)
        self.assertEqual(header.codes, {0x41: '0'})
        self.assertEqual(len(archive) - pos, 125)

    def test_single_byte(self):
        self.round_trip(b"Z")

    def test_padding_bits_are_not_decoded(self):
        archive = self.round_trip(b"AAA")
        self.assertEqual(archive[-1:], b"\x00")

    def test_empty_input(self):
        archive = self.round_trip(b"", "empty.txt")
        header, pos = ArchiveFormat.read_header(archive)
        self.assertEqual(header.entries, [])
        self.assertEqual(pos, len(archive))

    def test_unicode_filename(self):
        self.round_trip(b"data", "файл.txt")

    def test_deterministic_across_workers(self):
        random.seed(3)
        data = bytes(random.choice(b"abcdefgh") for _ in range(4099))
        archives = {Archiver(workers=w, verbose=False).encode_bytes(data, "d")
                    for w in (1, 2, 4, 8)}
        self.assertEqual(len(archives), 1)

    def test_truncated_archive(self):
        archive = self.archiver.encode_bytes(SAMPLE_TEXT, "sample.txt")

        for cut in range(0, len(archive), 7):
            with self.assertRaises(ArchiveError):
                self.archiver.decode_bytes(archive[:cut])

        with self.assertRaises(ArchiveError):
            self.archiver.decode_bytes(archive[:-1])

    def test_trailing_data(self):
        archive = self.archiver.encode_bytes(SAMPLE_TEXT, "sample.txt")
        with self.assertRaises(ArchiveError):
            self.archiver.decode_bytes(archive + b"\x00")

    def test_invalid_code_path(self):
        data = (struct.pack('<Q', 1) + b"x" + struct.pack('<i', 1) +
                struct.pack('<BIB', 0x41, 1, 1) + b"\x80" + b"\x00")
        with self.assertRaises(ArchiveError):
            self.archiver.decode_bytes(data)


class TestArchiver(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.archiver = Archiver(verbose=False)

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def write_file(self, name, data):
        path = os.path.join(self.temp_dir, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def read_file(self, path):
        with open(path, 'rb') as f:
            return f.read()

    def test_decode_to_recorded_path(self):
        test_file = self.write_file("test.txt", b"Hello World! " * 100)
        archive_path = os.path.join(self.temp_dir, "test.huff")

        self.archiver.encode_file(test_file, archive_path)
        os.remove(test_file)

        output_path = self.archiver.decode_file(archive_path)
        self.assertEqual(output_path, test_file)
        self.assertEqual(self.read_file(test_file), b"Hello World! " * 100)

    def test_decode_to_directory(self):
        test_file = self.write_file("notes.txt", SAMPLE_TEXT)
        archive_path = os.path.join(self.temp_dir, "notes.huff")
        extract_dir = os.path.join(self.temp_dir, "extracted")

        self.archiver.encode_file(test_file, archive_path)
        output_path = self.archiver.decode_file(archive_path, extract_dir)

        self.assertEqual(output_path, os.path.join(extract_dir, "notes.txt"))
        self.assertEqual(self.read_file(output_path), SAMPLE_TEXT)

    def test_empty_file(self):
        test_file = self.write_file("empty.txt", b"")
        archive_path = os.path.join(self.temp_dir, "empty.huff")
        extract_dir = os.path.join(self.temp_dir, "extracted")

        self.archiver.encode_file(test_file, archive_path)
        output_path = self.archiver.decode_file(archive_path, extract_dir)
        self.assertEqual(self.read_file(output_path), b"")

    def test_file_matches_in_memory_encoding(self):
        test_file = self.write_file("same.bin", SAMPLE_TEXT)
        archive_path = os.path.join(self.temp_dir, "same.huff")

        self.archiver.encode_file(test_file, archive_path)
        self.assertEqual(self.read_file(archive_path),
                         self.archiver.encode_bytes(SAMPLE_TEXT, test_file))

    def test_missing_input(self):
        with self.assertRaises(FileNotFoundError):
            self.archiver.encode_file(os.path.join(self.temp_dir, "missing.txt"),
                                      os.path.join(self.temp_dir, "out.huff"))

    def test_archive_path_is_input(self):
        data = SAMPLE_TEXT * 100
        path = self.write_file("self.huff", data)

        with self.assertRaises(ValueError):
            self.archiver.encode_file(path, path)
        self.assertEqual(self.read_file(path), data)

        with self.assertRaises(ValueError):
            self.archiver.encode_file(path, os.path.join(self.temp_dir, ".", "self.huff"))

    def test_wrong_extension(self):
        path = self.write_file("archive.zip", b"whatever")
        with self.assertRaises(ArchiveError):
            self.archiver.decode_file(path)

    def test_missing_archive(self):
        with self.assertRaises(FileNotFoundError):
            self.archiver.decode_file(os.path.join(self.temp_dir, "missing.huff"))

    def test_truncated_archive_writes_nothing(self):
        test_file = self.write_file("cut.txt", SAMPLE_TEXT)
        archive_path = os.path.join(self.temp_dir, "cut.huff")
        extract_dir = os.path.join(self.temp_dir, "extracted")

        self.archiver.encode_file(test_file, archive_path)
        data = self.read_file(archive_path)
        with open(archive_path, 'wb') as f:
            f.write(data[:20])

        with self.assertRaises(ArchiveError):
            self.archiver.decode_file(archive_path, extract_dir)
        self.assertFalse(os.path.exists(os.path.join(extract_dir, "cut.txt")))

    def test_list_archive(self):
        test_file = self.write_file("list.txt", b"AAAABBBB")
        archive_path = os.path.join(self.temp_dir, "list.huff")
        self.archiver.encode_file(test_file, archive_path)

        output = io.StringIO()
        with redirect_stdout(output):
            self.archiver.list_archive(archive_path)

        self.assertIn(test_file, output.getvalue())
        self.assertIn("Original:   8 bytes", output.getvalue())


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_encode_and_decode(self):
        test_file = os.path.join(self.temp_dir, "cli.txt")
        archive_path = os.path.join(self.temp_dir, "cli.huff")
        extract_dir = os.path.join(self.temp_dir, "out")
        with open(test_file, 'wb') as f:
            f.write(SAMPLE_TEXT)

        self.assertEqual(main(['-q', '-e', test_file, '-o', archive_path, '-t', '2']), 0)
        self.assertEqual(main(['-q', '-d', archive_path, '-C', extract_dir]), 0)

        with open(os.path.join(extract_dir, "cli.txt"), 'rb') as f:
            self.assertEqual(f.read(), SAMPLE_TEXT)

    def test_errors_return_one(self):
        with redirect_stderr(io.StringIO()) as errors:
            self.assertEqual(main(['-q', '-d', os.path.join(self.temp_dir, "x.txt")]), 1)
            self.assertEqual(main(['-q', '-e', os.path.join(self.temp_dir, "nope")]), 1)

        self.assertIn("Error:", errors.getvalue())

    def test_mode_required(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                main([])
            with self.assertRaises(SystemExit):
                main(['-e', 'a', '-d', 'b.huff'])


def run_tests():
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestFrequencyCounter))
    suite.addTests(loader.loadTestsFromTestCase(TestPriorityQueue))
    suite.addTests(loader.loadTestsFromTestCase(TestHuffmanTree))
    suite.addTests(loader.loadTestsFromTestCase(TestBitStream))
    suite.addTests(loader.loadTestsFromTestCase(TestArchiveFormat))
    suite.addTests(loader.loadTestsFromTestCase(TestCodec))
    suite.addTests(loader.loadTestsFromTestCase(TestArchiver))
    suite.addTests(loader.loadTestsFromTestCase(TestCommandLine))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(run_tests())
