import asyncio

import numpy as np

from   PIL                import Image

from   conftest           import FakeFiles, FakeHttp, FakeScreen, GraphBuilder, fast_options, make_backend

from   macroflow.backends import HttpResult
from   macroflow.engine   import ExecutionEngine, ExecutionStatus
from   macroflow.schema   import (
	ClickFlow, CloseAppFlow, DoubleClickFlow, FileReadFlow, FileWriteFlow, FindColorFlow,
	FindImageFlow, FocusWindowFlow, GetPixelColorFlow, GetWindowPositionNode, HotKeyFlow,
	HttpRequestFlow, ImageSimilarityNode, LaunchAppFlow, PrintFlow, RegionCaptureFlow,
	RightClickFlow, RunCommandFlow, ScreenCaptureFlow, SetVariableFlow, SetWindowPositionFlow,
	TypeStringFlow, WaitForColorFlow, WaitForImageFlow,
)
from   macroflow.values   import DataType


def run(graph, backend, **options):
	engine = ExecutionEngine(backend=backend)
	state  = asyncio.run(engine.run(graph, options=fast_options(**options)))
	return state, engine.contexts[state.execution_id]


def noise(height, width, seed):
	rng = np.random.default_rng(seed)
	return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


def test_pointer_and_keyboard_nodes(backend):
	b = GraphBuilder()
	b.chain(
		ClickFlow      (id="click" , x=5, y=6),
		DoubleClickFlow(id="double", x=1, y=2),
		RightClickFlow (id="right" ),
		HotKeyFlow     (id="paste" , key="v", ctrl=True, shift=True),
		TypeStringFlow (id="type"  , text="abc", delay_ms=1),
	)

	state, context = run(b.graph, backend)

	assert state.status == ExecutionStatus.COMPLETED
	assert backend.input.calls == [
		("click", 5, 6, "left", 1),
		("click", 1, 2, "left", 2),
		("click", 0, 0, "right", 1),
		("hotkey", ["ctrl", "shift", "v"]),
		("type_text", "a"),
		("type_text", "b"),
		("type_text", "c"),
	]
	assert context.stored_output("click", "success") is True


def test_file_nodes_and_missing_file():
	files = FakeFiles()
	files.files["in.txt"] = "hello"
	backend = make_backend(files=files)

	b = GraphBuilder()
	b.var("ok", DataType.BOOL, True)
	b.chain(
		FileReadFlow (id="read" , path="in.txt"),
		FileWriteFlow(id="write", path="out.txt"),
		FileWriteFlow(id="again", path="out.txt", content="!", append=True),
		FileReadFlow (id="miss" , path="missing.txt"),
		SetVariableFlow(id="keep", variable="ok"),
		PrintFlow(id="p_after", text="after"),
	)
	b.data("read", "content", "write", "content")
	b.data("miss", "success", "keep" , "value")

	state, context = run(b.graph, backend)

	assert state.status == ExecutionStatus.COMPLETED
	assert files.files["out.txt"] == "hello!"
	assert state.variables["ok"] is False
	assert context.stored_output("miss", "content") == ""
	assert any(log["node_id"] == "p_after" for log in state.logs)


def test_http_request_success_and_failure():
	http    = FakeHttp({"http://svc/ok": HttpResult(body="fine", status=200, success=True)})
	backend = make_backend(http=http)

	b = GraphBuilder()
	b.chain(
		HttpRequestFlow(id="ok"  , url="http://svc/ok", method="post", body="x"),
		HttpRequestFlow(id="down", url="http://svc/down"),
	)

	state, context = run(b.graph, backend)

	assert http.requests[0] == ("POST", "http://svc/ok", "x")
	assert context.stored_output("ok", "response") == "fine"
	assert context.stored_output("ok", "status"  ) == 200
	assert context.stored_output("down", "success") is False
	assert context.stored_output("down", "status" ) == 0
	assert state.status == ExecutionStatus.COMPLETED


def test_run_command_reports_exit_code(backend):
	b = GraphBuilder()
	b.chain(
		RunCommandFlow(id="echo", command="echo", args='a "b c"'),
		RunCommandFlow(id="fail", command="false"),
	)

	state, context = run(b.graph, backend)

	assert backend.shell.commands[0] == ("echo", ["a", "b c"])
	assert context.stored_output("echo", "output"   ) == "a b c"
	assert context.stored_output("echo", "exit_code") == 0
	assert context.stored_output("fail", "exit_code") == 1
	assert context.stored_output("fail", "success"  ) is False
	assert any(log["level"] == "warning" and log["node_id"] == "fail" for log in state.logs)


def test_window_nodes(backend):
	b = GraphBuilder()
	b.var("width", DataType.INTEGER)
	b.chain(
		LaunchAppFlow        (id="launch", path="/opt/editor", args="-n file.txt"),
		FocusWindowFlow      (id="focus" , title="Editor"),
		SetWindowPositionFlow(id="move"  , title="Editor", x=1, y=2, width=300, height=200),
		SetVariableFlow      (id="keep"  , variable="width"),
		CloseAppFlow         (id="close" , name="Missing"),
	)
	b.add(GetWindowPositionNode(id="geometry", title="Editor"))
	b.data("geometry", "width", "keep", "value")

	state, context = run(b.graph, backend)

	assert backend.window.launched == [("/opt/editor", ["-n", "file.txt"])]
	assert backend.window.focused  == ["Editor"]
	assert backend.window.windows["Editor"] == (1, 2, 300, 200)
	assert state.variables["width"] == 300
	assert context.stored_output("close", "success") is False


def test_screen_captures_land_in_capture_dir(tmp_path):
	screen  = FakeScreen(noise(200, 300, seed=1))
	backend = make_backend(screen=screen)

	b = GraphBuilder()
	b.chain(
		ScreenCaptureFlow(id="full"),
		RegionCaptureFlow(id="part", x=10, y=10, width=20, height=5, filename="part.png"),
	)

	state, context = run(b.graph, backend, capture_dir=str(tmp_path))

	full = context.stored_output("full", "image_path")
	part = context.stored_output("part", "image_path")
	assert full.startswith(str(tmp_path))
	with Image.open(full) as image:
		assert image.size == (300, 200)
	with Image.open(part) as image:
		assert image.size == (20, 5)
	assert part == str(tmp_path / "part.png")


def test_pixel_color_and_find_color():
	pixels = np.zeros((200, 300, 3), dtype=np.uint8)
	pixels[34, 12] = (1, 2, 3)
	pixels[90, 130] = (255, 0, 0)
	backend = make_backend(screen=FakeScreen(pixels, ratio=2.0))

	b = GraphBuilder()
	b.chain(
		GetPixelColorFlow(id="pixel", x=6, y=17),
		FindColorFlow(id="find", region_x=50, region_y=30, region_width=100, region_height=50, tolerance=0),
		FindColorFlow(id="none", r=0, g=255, b=0, tolerance=0),
	)

	state, context = run(b.graph, backend)

	assert [context.stored_output("pixel", c) for c in "rgb"] == [1, 2, 3]
	assert context.stored_output("find", "found") is True
	assert (context.stored_output("find", "x"), context.stored_output("find", "y")) == (65, 45)
	assert context.stored_output("none", "found") is False


def test_find_image_outputs_match_centre(tmp_path):
	haystack = noise(200, 300, seed=2)
	template = tmp_path / "button.png"
	Image.fromarray(haystack[60:90, 100:140]).save(template)
	missing  = tmp_path / "other.png"
	Image.fromarray(noise(30, 40, seed=3)).save(missing)
	backend  = make_backend(screen=FakeScreen(haystack))

	b = GraphBuilder()
	b.chain(
		FindImageFlow(id="find", image_path=str(template), tolerance=0),
		FindImageFlow(id="miss", image_path=str(missing ), tolerance=0),
		FindImageFlow(id="bad" , image_path=str(tmp_path / "absent.png")),
	)

	state, context = run(b.graph, backend)

	assert context.stored_output("find", "found") is True
	assert (context.stored_output("find", "x"), context.stored_output("find", "y")) == (120, 75)
	assert context.stored_output("find", "score") > 0.99
	assert context.stored_output("miss", "found") is False
	assert context.stored_output("bad" , "found") is False
	assert state.status == ExecutionStatus.COMPLETED


def test_find_image_with_transparent_border(tmp_path):
	haystack = noise(200, 300, seed=2)
	button   = np.dstack([haystack[60:90, 100:140], np.full((30, 40), 255, dtype=np.uint8)])
	button[:5] = 0
	template = tmp_path / "button.png"
	Image.fromarray(button).save(template)
	backend  = make_backend(screen=FakeScreen(haystack))

	b = GraphBuilder()
	b.chain(FindImageFlow(id="find", image_path=str(template), tolerance=0))

	state, context = run(b.graph, backend)

	assert context.stored_output("find", "found") is True
	assert (context.stored_output("find", "x"), context.stored_output("find", "y")) == (120, 75)


def test_wait_for_image_times_out(tmp_path):
	missing = tmp_path / "other.png"
	Image.fromarray(noise(30, 40, seed=3)).save(missing)
	backend = make_backend(screen=FakeScreen(noise(200, 300, seed=2)))

	b = GraphBuilder()
	b.chain(WaitForImageFlow(id="wait", image_path=str(missing), tolerance=0, timeout_ms=30))
	b.add(PrintFlow(id="p_next", text="next"))
	b.add(PrintFlow(id="p_late", text="late"))
	b.flow("wait", "p_next")
	b.flow("wait", "p_late", source_port="timed_out")

	state, context = run(b.graph, backend)

	ran = [log["node_id"] for log in state.logs if (log["node_id"] or "").startswith("p_")]
	assert ran == ["p_late"]
	assert context.stored_output("wait", "found") is False


def test_wait_for_color_passes_when_present():
	pixels = np.zeros((200, 300, 3), dtype=np.uint8)
	pixels[5, 5] = (255, 0, 0)
	backend = make_backend(screen=FakeScreen(pixels))

	b = GraphBuilder()
	b.chain(WaitForColorFlow(id="wait", x=5, y=5, tolerance=0, timeout_ms=500))
	b.add(PrintFlow(id="p_next", text="next"))
	b.add(PrintFlow(id="p_late", text="late"))
	b.flow("wait", "p_next")
	b.flow("wait", "p_late", source_port="timed_out")
	b.chain(WaitForColorFlow(id="never", x=6, y=6, tolerance=0, timeout_ms=20))

	state, context = run(b.graph, backend)

	ran = [log["node_id"] for log in state.logs if (log["node_id"] or "").startswith("p_")]
	assert ran == ["p_next"]
	assert context.stored_output("wait" , "found") is True
	assert context.stored_output("never", "found") is False


def test_image_similarity_node(tmp_path, backend):
	first  = noise(20, 20, seed=4)
	second = first.copy()
	second[:10] = 255 - second[:10]
	Image.fromarray(first ).save(tmp_path / "a.png")
	Image.fromarray(second).save(tmp_path / "b.png")

	b = GraphBuilder()
	b.var("similar", DataType.FLOAT)
	b.chain(SetVariableFlow(id="keep", variable="similar"))
	b.add(ImageSimilarityNode(id="sim", image_path1=str(tmp_path / "a.png"), image_path2=str(tmp_path / "b.png"), tolerance=0))
	b.data("sim", "similarity", "keep", "value")

	state, _ = run(b.graph, backend)

	assert state.variables["similar"] == 0.5
