# backends

import platform
import shlex
import subprocess
import sys


from   pathlib  import Path
from   PIL      import Image
from   pydantic import BaseModel, ConfigDict, Field
from   typing   import Dict, List, Optional, Tuple


import requests


DEFAULT_HTTP_TIMEOUT    : float = 30.0
DEFAULT_COMMAND_TIMEOUT : float = 60.0


Region   = Tuple[int, int, int, int]
Geometry = Tuple[int, int, int, int]


_KEY_ALIASES : Dict[str, str] = {
	# Modifiers
	"shift"     : "shift",
	"lshift"    : "shift",
	"control"   : "ctrl",
	"ctrl"      : "ctrl",
	"lcontrol"  : "ctrl",
	"alt"       : "alt",
	"option"    : "alt",
	"lalt"      : "alt",
	"meta"      : "command" if sys.platform == "darwin" else "win",
	"command"   : "command" if sys.platform == "darwin" else "win",
	"cmd"       : "command" if sys.platform == "darwin" else "win",
	"win"       : "command" if sys.platform == "darwin" else "win",
	"super"     : "command" if sys.platform == "darwin" else "win",

	# Navigation
	"up"        : "up",
	"uparrow"   : "up",
	"down"      : "down",
	"downarrow" : "down",
	"left"      : "left",
	"leftarrow" : "left",
	"right"     : "right",
	"rightarrow": "right",
	"home"      : "home",
	"end"       : "end",
	"pageup"    : "pageup",
	"pgup"      : "pageup",
	"pagedown"  : "pagedown",
	"pgdn"      : "pagedown",

	# Special
	"return"    : "enter",
	"enter"     : "enter",
	"escape"    : "esc",
	"esc"       : "esc",
	"tab"       : "tab",
	"backspace" : "backspace",
	"back"      : "backspace",
	"delete"    : "delete",
	"del"       : "delete",
	"space"     : "space",
	" "         : "space",
	"capslock"  : "capslock",
	"caps"      : "capslock",
}
_KEY_ALIASES.update({f"f{i}": f"f{i}" for i in range(1, 13)})


def normalize_key(name: str) -> Optional[str]:
	"""Key name understood by the input driver, or None for an unknown key"""
	lowered = name.lower()
	if lowered in _KEY_ALIASES:
		return _KEY_ALIASES[lowered]
	if len(name) == 1:
		return name
	return None


def _key(name: str) -> str:
	key = normalize_key(name)
	if key is None:
		raise ValueError(f"Unknown key '{name}'")
	return key


# =============================================================================
# INTERFACES
# Executors call these from worker threads; every method may block
# =============================================================================

class InputBackend:
	"""Pointer and keyboard injection"""

	def move(self, x: int, y: int):
		raise NotImplementedError

	def click(self, x: int, y: int, button: str = "left", clicks: int = 1):
		raise NotImplementedError

	def mouse_down(self, button: str = "left"):
		raise NotImplementedError

	def mouse_up(self, button: str = "left"):
		raise NotImplementedError

	def scroll(self, dx: int, dy: int):
		raise NotImplementedError

	def key_press(self, key: str):
		raise NotImplementedError

	def key_down(self, key: str):
		raise NotImplementedError

	def key_up(self, key: str):
		raise NotImplementedError

	def type_text(self, text: str, interval: float = 0.0):
		raise NotImplementedError

	def hotkey(self, keys: List[str]):
		raise NotImplementedError


class ScreenBackend:
	"""Screen capture; regions are in logical (pointer) coordinates"""

	def capture(self, region: Optional[Region] = None, display: int = 0) -> Image.Image:
		raise NotImplementedError

	def pixel_ratio(self) -> float:
		"""Physical pixels per logical pixel in captured images"""
		return 1.0


class WindowBackend:
	def launch(self, path: str, args: List[str]) -> bool:
		raise NotImplementedError

	def close(self, name: str) -> bool:
		raise NotImplementedError

	def focus(self, title: str) -> bool:
		raise NotImplementedError

	def get_geometry(self, title: str) -> Optional[Geometry]:
		raise NotImplementedError

	def set_geometry(self, title: str, x: int, y: int, width: int, height: int) -> bool:
		raise NotImplementedError


class CommandResult(BaseModel):
	output    : str  = ""
	exit_code : int  = 0
	success   : bool = False


class ShellBackend:
	def run(self, command: str, args: List[str]) -> CommandResult:
		raise NotImplementedError


class HttpResult(BaseModel):
	body    : str  = ""
	status  : int  = 0
	success : bool = False


class HttpBackend:
	def request(self, method: str, url: str, body: str = "") -> HttpResult:
		raise NotImplementedError


class FileBackend:
	def read(self, path: str) -> str:
		raise NotImplementedError

	def write(self, path: str, content: str, append: bool = False):
		raise NotImplementedError


# =============================================================================
# DESKTOP IMPLEMENTATIONS
# =============================================================================

class DesktopInputBackend(InputBackend):
	"""pyautogui driver; imported on first use since it needs a display"""

	def _gui(self):
		import pyautogui
		return pyautogui

	def move(self, x: int, y: int):
		self._gui().moveTo(x, y)

	def click(self, x: int, y: int, button: str = "left", clicks: int = 1):
		self._gui().click(x=x, y=y, button=button, clicks=clicks)

	def mouse_down(self, button: str = "left"):
		self._gui().mouseDown(button=button)

	def mouse_up(self, button: str = "left"):
		self._gui().mouseUp(button=button)

	def scroll(self, dx: int, dy: int):
		gui = self._gui()
		if dy:
			gui.scroll(dy)
		if dx:
			gui.hscroll(dx)

	def key_press(self, key: str):
		self._gui().press(_key(key))

	def key_down(self, key: str):
		self._gui().keyDown(_key(key))

	def key_up(self, key: str):
		self._gui().keyUp(_key(key))

	def type_text(self, text: str, interval: float = 0.0):
		self._gui().write(text, interval=interval)

	def hotkey(self, keys: List[str]):
		self._gui().hotkey(*[_key(k) for k in keys])


class DesktopScreenBackend(ScreenBackend):
	"""
	Pillow ImageGrab capture. Regions are grabbed directly through a bbox in
	physical pixels; the physical-per-logical ratio is measured on first use and
	kept for the life of the backend.
	"""

	def __init__(self):
		self._ratio : Optional[float] = None

	def _logical_size(self) -> Tuple[int, int]:
		import pyautogui
		width, height = pyautogui.size()
		return width, height

	def _measure(self, image: Image.Image) -> float:
		logical_width, _ = self._logical_size()
		return image.width / logical_width if logical_width else 1.0

	def capture(self, region: Optional[Region] = None, display: int = 0) -> Image.Image:
		from PIL import ImageGrab
		if region is None:
			image = ImageGrab.grab(all_screens=display != 0)
			if self._ratio is None:
				self._ratio = self._measure(image)
			return image.convert("RGB")
		ratio = self.pixel_ratio()
		x, y, width, height = region
		box = (int(x * ratio), int(y * ratio), int((x + width) * ratio), int((y + height) * ratio))
		return ImageGrab.grab(bbox=box, all_screens=display != 0).convert("RGB")

	def pixel_ratio(self) -> float:
		if self._ratio is None:
			from PIL import ImageGrab
			self._ratio = self._measure(ImageGrab.grab())
		return self._ratio


def _run(args: List[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> subprocess.CompletedProcess:
	return subprocess.run(args, capture_output=True, text=True, timeout=timeout)


def _applescript_string(text: str) -> str:
	return text.replace("\\", "\\\\").replace("\"", "\\\"")


class DesktopWindowBackend(WindowBackend):
	"""Window control through the platform tools (open/osascript, xdg-open/wmctrl/xdotool, start/taskkill)"""

	def __init__(self):
		self.system = platform.system()

	def launch(self, path: str, args: List[str]) -> bool:
		if self.system == "Darwin":
			command = ["open", path, *args]
		elif self.system == "Windows":
			command = ["cmd", "/C", "start", "", path, *args]
		else:
			command = ["xdg-open", path, *args]
		subprocess.Popen(command)
		return True

	def close(self, name: str) -> bool:
		if self.system == "Windows":
			command = ["taskkill", "/IM", name, "/F"]
		else:
			command = ["pkill", "-x", name]
		return _run(command).returncode == 0

	def focus(self, title: str) -> bool:
		if self.system == "Darwin":
			script = (
				'tell application "System Events"\n'
				f'  set procs to (every process whose name contains "{_applescript_string(title)}")\n'
				'  if procs is {} then return "false"\n'
				'  set frontmost of item 1 of procs to true\n'
				'  return "true"\n'
				'end tell'
			)
			completed = _run(["osascript", "-e", script])
			return completed.returncode == 0 and completed.stdout.strip() == "true"
		if self.system == "Linux":
			return _run(["wmctrl", "-a", title]).returncode == 0
		return False

	def get_geometry(self, title: str) -> Optional[Geometry]:
		if self.system != "Linux":
			return None
		search = _run(["xdotool", "search", "--name", title])
		lines  = search.stdout.split()
		if search.returncode != 0 or not lines:
			return None
		shell = _run(["xdotool", "getwindowgeometry", "--shell", lines[0]])
		if shell.returncode != 0:
			return None
		fields = dict(line.split("=", 1) for line in shell.stdout.splitlines() if "=" in line)
		return (
			int(fields.get("X"     , 0)),
			int(fields.get("Y"     , 0)),
			int(fields.get("WIDTH" , 0)),
			int(fields.get("HEIGHT", 0)),
		)

	def set_geometry(self, title: str, x: int, y: int, width: int, height: int) -> bool:
		if self.system == "Linux":
			return _run(["wmctrl", "-r", title, "-e", f"0,{x},{y},{width},{height}"]).returncode == 0
		if self.system == "Darwin":
			script = (
				'tell application "System Events"\n'
				f'  set procs to (every process whose name contains "{_applescript_string(title)}")\n'
				'  if procs is {} then return "false"\n'
				'  tell window 1 of item 1 of procs\n'
				f'    set position to {{{x}, {y}}}\n'
				f'    set size to {{{width}, {height}}}\n'
				'  end tell\n'
				'  return "true"\n'
				'end tell'
			)
			completed = _run(["osascript", "-e", script])
			return completed.returncode == 0 and completed.stdout.strip() == "true"
		return False


class SubprocessShellBackend(ShellBackend):
	def run(self, command: str, args: List[str]) -> CommandResult:
		completed = _run([command, *args])
		return CommandResult(
			output    = completed.stdout,
			exit_code = completed.returncode,
			success   = completed.returncode == 0,
		)


class RequestsHttpBackend(HttpBackend):
	def __init__(self, timeout: float = DEFAULT_HTTP_TIMEOUT):
		self.timeout = timeout

	def request(self, method: str, url: str, body: str = "") -> HttpResult:
		response = requests.request(method.upper() or "GET", url, data=body.encode("utf-8") if body else None, timeout=self.timeout)
		return HttpResult(
			body    = response.text,
			status  = response.status_code,
			success = response.ok,
		)


class LocalFileBackend(FileBackend):
	def read(self, path: str) -> str:
		return Path(path).read_text(encoding="utf-8")

	def write(self, path: str, content: str, append: bool = False):
		target = Path(path)
		if target.parent and not target.parent.exists():
			target.parent.mkdir(parents=True, exist_ok=True)
		with open(target, "a" if append else "w", encoding="utf-8") as f:
			f.write(content)


class ImplementedBackend(BaseModel):
	"""Capability collaborators handed to node executors"""
	model_config = ConfigDict(arbitrary_types_allowed=True)

	input  : InputBackend  = Field(default_factory=DesktopInputBackend)
	screen : ScreenBackend = Field(default_factory=DesktopScreenBackend)
	window : WindowBackend = Field(default_factory=DesktopWindowBackend)
	shell  : ShellBackend  = Field(default_factory=SubprocessShellBackend)
	http   : HttpBackend   = Field(default_factory=RequestsHttpBackend)
	files  : FileBackend   = Field(default_factory=LocalFileBackend)


def split_args(args: str) -> List[str]:
	"""Split a command-line argument string the way a POSIX shell would"""
	if not args:
		return []
	try:
		return shlex.split(args)
	except ValueError:
		return args.split()
