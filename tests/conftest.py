import pytest


class RecordingSink:
    """Keeps every call so tests can check allocation and row order."""

    def __init__(self):
        self.size = None
        self.allocations = 0
        self.rows = {}
        self.order = []

    def allocate(self, width, height):
        self.size = (width, height)
        self.allocations += 1

    def write_row(self, y, row):
        self.rows[y] = bytes(row)
        self.order.append(y)

    def pixel(self, x, y):
        p = x * 4
        return tuple(self.rows[y][p:p + 4])


@pytest.fixture
def sink():
    return RecordingSink()


class Channels:
    def __init__(self):
        self.debug_lines = []
        self.warn_lines = []

    def debug(self, msg):
        self.debug_lines.append(msg)

    def warn(self, msg):
        self.warn_lines.append(msg)


@pytest.fixture
def channels():
    return Channels()
