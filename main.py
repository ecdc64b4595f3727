"""
Командная строка для кодировщика Хаффмана.
"""

import argparse
import sys

from archiver import DEFAULT_ARCHIVE_NAME, Archiver
from frequency import DEFAULT_WORKERS


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Huffman file compressor',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py -e notes.txt
  python main.py -e notes.txt -o notes.huff -t 8
  python main.py -d encrypted.huff
  python main.py -d notes.huff -C ./output
  python main.py -l notes.huff
        """
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('-e', '--encode', metavar='FILE', help='Encode FILE')
    mode.add_argument('-d', '--decode', metavar='ARCHIVE', help='Decode ARCHIVE (.huff)')
    mode.add_argument('-l', '--list', metavar='ARCHIVE', help='Show archive code table')

    parser.add_argument('-o', '--output', default=DEFAULT_ARCHIVE_NAME,
                        help=f'Archive path (default: {DEFAULT_ARCHIVE_NAME})')
    parser.add_argument('-C', '--dir', default=None,
                        help='Output directory for decoded file')
    parser.add_argument('-t', '--threads', type=int, default=DEFAULT_WORKERS,
                        help=f'Frequency counting threads (default: {DEFAULT_WORKERS})')
    parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')

    args = parser.parse_args(argv)

    if args.threads < 1:
        parser.error('--threads must be at least 1')

    archiver = Archiver(workers=args.threads, verbose=not args.quiet)

    try:
        if args.encode is not None:
            archiver.encode_file(args.encode, args.output)

        elif args.decode is not None:
            archiver.decode_file(args.decode, args.dir)

        else:
            archiver.list_archive(args.list)

    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
