"""
Реализует построение дерева Хаффмана по частотам байтов,
генерацию кодов, восстановление дерева по таблице кодов и декодирование.
"""

import heapq
from typing import Dict, List, Optional, Tuple

from bitstream import BitReader
from frequency import ALPHABET_SIZE


MAX_CODE_LENGTH = 255


class HuffmanNode:
    def __init__(self, symbol: Optional[int] = None, weight: int = 0,
                 left: Optional['HuffmanNode'] = None,
                 right: Optional['HuffmanNode'] = None):
        self.symbol = symbol
        self.weight = weight
        self.left = left
        self.right = right

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None

    def __repr__(self):
        if self.is_leaf:
            return f"HuffmanNode(symbol={self.symbol}, weight={self.weight})"
        return f"HuffmanNode(weight={self.weight})"


class PriorityQueue:
    """
    Min-heap of nodes ordered by weight. Nodes of equal weight leave the
    queue in the order they were inserted.
    """

    def __init__(self, capacity: int = ALPHABET_SIZE):
        self.capacity = capacity
        self._heap: List[Tuple[int, int, HuffmanNode]] = []
        self._counter = 0

    def __len__(self):
        return len(self._heap)

    def insert(self, node: HuffmanNode):
        if len(self._heap) >= self.capacity:
            raise OverflowError(f"priority queue is full ({self.capacity} nodes)")

        heapq.heappush(self._heap, (node.weight, self._counter, node))
        self._counter += 1

    def extract_min(self) -> HuffmanNode:
        if not self._heap:
            raise IndexError("extract_min from empty priority queue")
        return heapq.heappop(self._heap)[2]

    def weights(self) -> List[int]:
        return [weight for weight, _, _ in self._heap]


class HuffmanTree:
    def __init__(self):
        self.root: Optional[HuffmanNode] = None
        self.codes: Dict[int, str] = {}

    def build(self, frequencies: Dict[int, int],
              queue: Optional[PriorityQueue] = None):
        self.root = None
        self.codes = {}

        if queue is None:
            queue = PriorityQueue()

        for symbol in sorted(frequencies):
            if frequencies[symbol] > 0:
                queue.insert(HuffmanNode(symbol=symbol, weight=frequencies[symbol]))

        if not len(queue):
            return

        while len(queue) > 1:
            left = queue.extract_min()
            right = queue.extract_min()

            parent = HuffmanNode(weight=left.weight + right.weight,
                                 left=left, right=right)
            queue.insert(parent)

        self.root = queue.extract_min()
        self._generate_codes()

    def _generate_codes(self):
        self.codes = {}

        if self.root is None:
            return

        if self.root.is_leaf:
            self.codes[self.root.symbol] = '0'
            return

        stack = [(self.root, '')]
        while stack:
            node, code = stack.pop()

            if node.is_leaf:
                if len(code) > MAX_CODE_LENGTH:
                    raise ValueError(
                        f"code for symbol {node.symbol} is {len(code)} bits long")
                self.codes[node.symbol] = code
                continue

            # right first so the left subtree is walked first
            if node.right is not None:
                stack.append((node.right, code + '1'))
            if node.left is not None:
                stack.append((node.left, code + '0'))

    @classmethod
    def from_codes(cls, codes: Dict[int, str]) -> 'HuffmanTree':
        tree = cls()
        tree.root = HuffmanNode()
        tree.codes = dict(codes)

        for symbol in sorted(codes):
            code = codes[symbol]
            if not code:
                raise ValueError(f"empty code for symbol {symbol}")

            current = tree.root
            for bit in code:
                if current.symbol is not None:
                    raise ValueError(f"code for symbol {symbol} extends another code")

                if bit == '0':
                    if current.left is None:
                        current.left = HuffmanNode()
                    current = current.left
                elif bit == '1':
                    if current.right is None:
                        current.right = HuffmanNode()
                    current = current.right
                else:
                    raise ValueError(f"invalid bit {bit!r} in code for symbol {symbol}")

            if current.symbol is not None or not current.is_leaf:
                raise ValueError(f"code for symbol {symbol} is a prefix of another code")
            current.symbol = symbol

        return tree

    def decode(self, reader: BitReader, count: int) -> bytes:
        output = bytearray()

        if count == 0:
            return bytes(output)

        if self.root is None or self.root.is_leaf:
            raise ValueError("cannot decode without a code tree")

        current = self.root
        try:
            while len(output) < count:
                current = current.right if reader.read_bit() else current.left

                if current is None:
                    raise ValueError(
                        f"bit {reader.position - 1} does not match any code")

                if current.is_leaf:
                    output.append(current.symbol)
                    current = self.root
        except EOFError:
            raise ValueError(
                f"payload ended after {len(output)} of {count} symbols") from None

        return bytes(output)
