from   typing             import Any, Dict, List, Optional, Tuple

import numpy as np
import pytest

from   PIL                import Image

from   macroflow.backends import (
	CommandResult, FileBackend, HttpBackend, HttpResult, ImplementedBackend,
	InputBackend, ScreenBackend, ShellBackend, WindowBackend,
)
from   macroflow.schema   import EntryFlow, ExecutionOptions, Graph, GraphOptions, Variable
from   macroflow.values   import DataType


class FakeInput(InputBackend):
	def __init__(self):
		self.calls : List[Tuple[Any, ...]] = []

	def move(self, x, y):
		self.calls.append(("move", x, y))

	def click(self, x, y, button="left", clicks=1):
		self.calls.append(("click", x, y, button, clicks))

	def mouse_down(self, button="left"):
		self.calls.append(("mouse_down", button))

	def mouse_up(self, button="left"):
		self.calls.append(("mouse_up", button))

	def scroll(self, dx, dy):
		self.calls.append(("scroll", dx, dy))

	def key_press(self, key):
		self.calls.append(("key_press", key))

	def key_down(self, key):
		self.calls.append(("key_down", key))

	def key_up(self, key):
		self.calls.append(("key_up", key))

	def type_text(self, text, interval=0.0):
		self.calls.append(("type_text", text))

	def hotkey(self, keys):
		self.calls.append(("hotkey", list(keys)))


class FakeScreen(ScreenBackend):
	"""Serves crops of a fixed RGB array"""

	def __init__(self, pixels: Optional[np.ndarray] = None, ratio: float = 1.0):
		self.pixels   = pixels if pixels is not None else np.zeros((200, 300, 3), dtype=np.uint8)
		self.ratio    = ratio
		self.captures = 0

	def capture(self, region=None, display=0):
		self.captures += 1
		image = Image.fromarray(self.pixels)
		if region is None:
			return image
		x, y, width, height = region
		box = (
			int(x * self.ratio),
			int(y * self.ratio),
			min(int((x + width ) * self.ratio), image.width ),
			min(int((y + height) * self.ratio), image.height),
		)
		return image.crop(box)

	def pixel_ratio(self):
		return self.ratio


class FakeWindow(WindowBackend):
	def __init__(self):
		self.windows  : Dict[str, Tuple[int, int, int, int]] = {"Editor": (10, 20, 640, 480)}
		self.launched : List[Tuple[str, List[str]]]          = []
		self.focused  : List[str]                            = []

	def launch(self, path, args):
		self.launched.append((path, list(args)))
		return True

	def close(self, name):
		return self.windows.pop(name, None) is not None

	def focus(self, title):
		self.focused.append(title)
		return title in self.windows

	def get_geometry(self, title):
		return self.windows.get(title)

	def set_geometry(self, title, x, y, width, height):
		if title not in self.windows:
			return False
		self.windows[title] = (x, y, width, height)
		return True


class FakeShell(ShellBackend):
	def __init__(self):
		self.commands : List[Tuple[str, List[str]]] = []

	def run(self, command, args):
		self.commands.append((command, list(args)))
		if command == "false":
			return CommandResult(output="", exit_code=1, success=False)
		return CommandResult(output=" ".join(args), exit_code=0, success=True)


class FakeHttp(HttpBackend):
	def __init__(self, responses: Optional[Dict[str, HttpResult]] = None):
		self.responses = responses or {}
		self.requests  : List[Tuple[str, str, str]] = []

	def request(self, method, url, body=""):
		self.requests.append((method, url, body))
		if url not in self.responses:
			raise ConnectionError(f"no route to {url}")
		return self.responses[url]


class FakeFiles(FileBackend):
	def __init__(self):
		self.files : Dict[str, str] = {}

	def read(self, path):
		if path not in self.files:
			raise FileNotFoundError(path)
		return self.files[path]

	def write(self, path, content, append=False):
		self.files[path] = (self.files.get(path, "") if append else "") + content


def make_backend(**overrides) -> ImplementedBackend:
	parts = {
		"input"  : FakeInput(),
		"screen" : FakeScreen(),
		"window" : FakeWindow(),
		"shell"  : FakeShell(),
		"http"   : FakeHttp(),
		"files"  : FakeFiles(),
	}
	parts.update(overrides)
	return ImplementedBackend(**parts)


class GraphBuilder:
	"""Small helper for wiring graphs in tests; starts with an Entry node"""

	def __init__(self, name: str = "test"):
		self.graph = Graph(options=GraphOptions(name=name), nodes=[EntryFlow(id="entry")])
		self.last  = "entry"

	def add(self, node):
		self.graph.nodes.append(node)
		return node.id

	def var(self, name: str, data_type: DataType, default: Any = None):
		self.graph.variables.append(Variable(name=name, data_type=data_type, default=default))

	def flow(self, source: str, target: str, source_port: str = "flow_out", target_port: str = "flow_in"):
		self.graph.connect(source, source_port, target, target_port)

	def data(self, source: str, source_port: str, target: str, target_port: str):
		self.graph.connect(source, source_port, target, target_port)

	def chain(self, *nodes):
		"""Append flow nodes one after the other, starting from the last chained node"""
		for node in nodes:
			self.add(node)
			self.flow(self.last, node.id)
			self.last = node.id
		return self


def fast_options(**kwargs) -> ExecutionOptions:
	values = {"poll_interval_ms": 5}
	values.update(kwargs)
	return ExecutionOptions(**values)


@pytest.fixture
def backend():
	return make_backend()


@pytest.fixture
def builder():
	return GraphBuilder()
