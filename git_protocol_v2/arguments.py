"""Command arguments: packet-line framed ``key[ value]`` lines without LF."""

from .pairs import Pair, PairList


class CommandArgument(Pair):
    SEPARATOR = ' '
    LINE_FEED = False
    KIND = 'argument'


class CommandArguments(PairList):
    """command-args = *command-specific-arg"""

    ITEM = CommandArgument

    def __str__(self) -> str:
        return '<' + ','.join(str(arg) for arg in self) + '>'
