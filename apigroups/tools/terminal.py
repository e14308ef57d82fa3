import sys
from typing import TextIO

import colored
from colored import stylize


class TerminalPrinter:
    def __init__(self, stream: TextIO = None, use_color: bool = True) -> None:
        self.stream = stream or sys.stdout
        self.use_color = use_color

    def style(self, msg: str, styles) -> str:
        if not self.use_color:
            return msg

        return stylize(msg, styles)

    def headerln(self, msg):
        msg = self.style(msg, styles=[colored.fg("cyan")])
        self.write_line(msg)

    def errorln(self, msg):
        msg = self.style(msg, styles=[colored.fg("red")])
        self.write_line(msg)

    def write_line(self, msg):
        self.write("%s\n" % msg)

    def write(self, msg):
        self.stream.write(msg)
        self.stream.flush()
