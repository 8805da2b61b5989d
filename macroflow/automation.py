# automation

import numpy as np


from   pathlib    import Path
from   PIL        import Image
from   typing     import Any, Dict, Optional, Tuple


from   .backends  import split_args
from   .event_bus import EventType, LogLevel
from   .matching  import color_matches, find_color, load_template, match_template
from   .nodes     import NodeExecutionContext, NodeExecutionResult, WFFlowType
from   .schema    import DEFAULT_COLOR_POLL_MS, DEFAULT_IMAGE_POLL_MS
from   .utils     import get_timestamp_str
from   .values    import to_bool, to_integer, to_string
from   .waits     import WaitOutcome, cooperative_sleep, poll_until, run_blocking


class WFAutomationFlow(WFFlowType):
	"""
	Flow node whose effect goes through a capability collaborator.

	A collaborator failure is not fatal: the node reports it, its outputs fall
	back to failure_outputs, and control still moves on along 'flow_out'.
	"""
	failure_outputs : Dict[str, Any] = {"success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		return {"success": True}

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		try:
			result.outputs.update(await self.perform(context))
		except Exception as e:
			result.outputs.update(self.failure_outputs)
			result.success = False
			result.error   = f"{type(e).__name__}: {e}"
		return result


def _capture_dir(context: NodeExecutionContext) -> Path:
	path = Path(context.options.capture_dir)
	path.mkdir(parents=True, exist_ok=True)
	return path


def _output_path(context: NodeExecutionContext, filename: str) -> Path:
	path = Path(filename)
	if not path.is_absolute():
		path = _capture_dir(context) / path
	return path


def _region(context: NodeExecutionContext) -> Tuple[int, int, int, int]:
	return (
		to_integer(context.inputs.get("region_x"     )),
		to_integer(context.inputs.get("region_y"     )),
		to_integer(context.inputs.get("region_width" )),
		to_integer(context.inputs.get("region_height")),
	)


# =============================================================================
# INPUT AUTOMATION
# =============================================================================

class WFClickFlow(WFAutomationFlow):
	button : str = "left"
	clicks : int = 1

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		x = to_integer(context.inputs.get("x"))
		y = to_integer(context.inputs.get("y"))
		await context.log(f"{self.button.capitalize()} click x{self.clicks} at ({x}, {y})")
		await run_blocking(self.impl.input.click, x, y, self.button, self.clicks)
		return {"success": True}


class WFDoubleClickFlow(WFClickFlow):
	clicks = 2


class WFRightClickFlow(WFClickFlow):
	button = "right"


class WFMouseMoveFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		x = to_integer(context.inputs.get("x"))
		y = to_integer(context.inputs.get("y"))
		await context.log(f"Move pointer to ({x}, {y})")
		await run_blocking(self.impl.input.move, x, y)
		return {"success": True}


class WFMouseDownFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		button = to_string(context.inputs.get("button")) or "left"
		await context.log(f"Press {button} button")
		await run_blocking(self.impl.input.mouse_down, button)
		return {"success": True}


class WFMouseUpFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		button = to_string(context.inputs.get("button")) or "left"
		await context.log(f"Release {button} button")
		await run_blocking(self.impl.input.mouse_up, button)
		return {"success": True}


class WFScrollFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		dx = to_integer(context.inputs.get("x"))
		dy = to_integer(context.inputs.get("y"))
		await context.log(f"Scroll ({dx}, {dy})")
		await run_blocking(self.impl.input.scroll, dx, dy)
		return {"success": True}


class WFKeyPressFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		key = to_string(context.inputs.get("key"))
		await context.log(f"Press key '{key}'")
		await run_blocking(self.impl.input.key_press, key)
		return {"success": True}


class WFKeyDownFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		key = to_string(context.inputs.get("key"))
		await context.log(f"Hold key '{key}'")
		await run_blocking(self.impl.input.key_down, key)
		return {"success": True}


class WFKeyUpFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		key = to_string(context.inputs.get("key"))
		await context.log(f"Release key '{key}'")
		await run_blocking(self.impl.input.key_up, key)
		return {"success": True}


class WFTypeTextFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		text = to_string(context.inputs.get("text"))
		await context.log(f"Type {len(text)} characters")
		await run_blocking(self.impl.input.type_text, text)
		return {"success": True}


class WFTypeStringFlow(WFAutomationFlow):
	"""Types one character at a time, pausing delay_ms in between; stops early when cancelled"""

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		text  = to_string(context.inputs.get("text"))
		delay = max(0, to_integer(context.inputs.get("delay_ms")))
		await context.log(f"Type {len(text)} characters, {delay} ms apart")
		for i, char in enumerate(text):
			if context.stopped:
				return {"success": False}
			await run_blocking(self.impl.input.type_text, char)
			if delay and i < len(text) - 1:
				await cooperative_sleep(delay, context.stop_flag, context.options.poll_interval_ms)
		return {"success": True}


class WFHotKeyFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		keys = [name for name in ("ctrl", "shift", "alt", "command") if to_bool(context.inputs.get(name))]
		keys.append(to_string(context.inputs.get("key")))
		await context.log("Hot key " + "+".join(keys))
		await run_blocking(self.impl.input.hotkey, keys)
		return {"success": True}


# =============================================================================
# SYSTEM, WINDOWS AND I/O
# =============================================================================

class WFReadInputFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		prompt = to_string(context.inputs.get("prompt"))
		value  = await context.request_input(prompt)
		if value is None:
			if not context.stopped:
				await context.log("No input received", LogLevel.WARNING)
			value = ""
		result.outputs["value"] = to_string(value)
		return result


class WFFileReadFlow(WFAutomationFlow):
	failure_outputs = {"content": "", "success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		path = to_string(context.inputs.get("path"))
		await context.log(f"Read file '{path}'")
		content = await run_blocking(self.impl.files.read, path)
		return {"content": content, "success": True}


class WFFileWriteFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		path    = to_string(context.inputs.get("path"))
		content = to_string(context.inputs.get("content"))
		append  = to_bool(context.inputs.get("append"))
		await context.log(f"{'Append to' if append else 'Write'} file '{path}'")
		await run_blocking(self.impl.files.write, path, content, append)
		return {"success": True}


class WFHttpRequestFlow(WFAutomationFlow):
	failure_outputs = {"response": "", "status": 0, "success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		url    = to_string(context.inputs.get("url"))
		method = to_string(context.inputs.get("method")).upper() or "GET"
		body   = to_string(context.inputs.get("body"))
		await context.log(f"HTTP {method} {url}")
		response = await run_blocking(self.impl.http.request, method, url, body)
		if not response.success:
			await context.log(f"HTTP {method} {url} returned status {response.status}", LogLevel.WARNING)
		return {"response": response.body, "status": response.status, "success": response.success}


class WFRunCommandFlow(WFAutomationFlow):
	failure_outputs = {"output": "", "exit_code": -1, "success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		command = to_string(context.inputs.get("command"))
		args    = split_args(to_string(context.inputs.get("args")))
		await context.log(f"Run command: {command} {' '.join(args)}".rstrip())
		completed = await run_blocking(self.impl.shell.run, command, args)
		if not completed.success:
			await context.log(f"Command exited with code {completed.exit_code}", LogLevel.WARNING)
		return {"output": completed.output, "exit_code": completed.exit_code, "success": completed.success}


class WFLaunchAppFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		path = to_string(context.inputs.get("path"))
		args = split_args(to_string(context.inputs.get("args")))
		await context.log(f"Launch '{path}'")
		return {"success": bool(await run_blocking(self.impl.window.launch, path, args))}


class WFCloseAppFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		name = to_string(context.inputs.get("name"))
		await context.log(f"Close '{name}'")
		success = bool(await run_blocking(self.impl.window.close, name))
		if not success:
			await context.log(f"Could not close '{name}'", LogLevel.WARNING)
		return {"success": success}


class WFFocusWindowFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		title = to_string(context.inputs.get("title"))
		await context.log(f"Focus window '{title}'")
		success = bool(await run_blocking(self.impl.window.focus, title))
		if not success:
			await context.log(f"No window matching '{title}'", LogLevel.WARNING)
		return {"success": success}


class WFSetWindowPositionFlow(WFAutomationFlow):
	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		title  = to_string (context.inputs.get("title" ))
		x      = to_integer(context.inputs.get("x"     ))
		y      = to_integer(context.inputs.get("y"     ))
		width  = to_integer(context.inputs.get("width" ))
		height = to_integer(context.inputs.get("height"))
		await context.log(f"Move window '{title}' to ({x}, {y}) size {width}x{height}")
		success = bool(await run_blocking(self.impl.window.set_geometry, title, x, y, width, height))
		return {"success": success}


# =============================================================================
# SCREEN AND IMAGE
# =============================================================================

async def _save(image: Image.Image, path: Path) -> str:
	path.parent.mkdir(parents=True, exist_ok=True)
	await run_blocking(image.save, str(path))
	return str(path)


class WFScreenCaptureFlow(WFAutomationFlow):
	failure_outputs = {"image_path": "", "success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		display = to_integer(context.inputs.get("display"))
		image   = await run_blocking(self.impl.screen.capture, None, display)
		path    = await _save(image, _capture_dir(context) / f"capture_{get_timestamp_str()}.png")
		await context.log(f"Screen captured to '{path}'")
		return {"image_path": path, "success": True}


class WFSaveScreenshotFlow(WFAutomationFlow):
	failure_outputs = {"saved_path": "", "success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		source   = to_string(context.inputs.get("image_path"))
		filename = to_string(context.inputs.get("filename")) or "screenshot.png"
		if source:
			image = await run_blocking(Image.open, source)
		else:
			image = await run_blocking(self.impl.screen.capture, None, 0)
		path = await _save(image, _output_path(context, filename))
		await context.log(f"Screenshot saved to '{path}'")
		return {"saved_path": path, "success": True}


class WFRegionCaptureFlow(WFAutomationFlow):
	failure_outputs = {"image_path": "", "success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		region = (
			to_integer(context.inputs.get("x"     )),
			to_integer(context.inputs.get("y"     )),
			to_integer(context.inputs.get("width" )),
			to_integer(context.inputs.get("height")),
		)
		filename = to_string(context.inputs.get("filename")) or "region.png"
		image    = await run_blocking(self.impl.screen.capture, region, 0)
		path     = await _save(image, _output_path(context, filename))
		await context.log(f"Region {region} captured to '{path}'")
		return {"image_path": path, "success": True}


async def _pixel(impl: Any, x: int, y: int) -> Tuple[int, int, int]:
	image  = await run_blocking(impl.screen.capture, (x, y, 1, 1), 0)
	pixels = np.asarray(image.convert("RGB"))
	r, g, b = pixels[0, 0, :3]
	return int(r), int(g), int(b)


class WFGetPixelColorFlow(WFAutomationFlow):
	failure_outputs = {"r": 0, "g": 0, "b": 0, "success": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		x = to_integer(context.inputs.get("x"))
		y = to_integer(context.inputs.get("y"))
		r, g, b = await _pixel(self.impl, x, y)
		await context.log(f"Pixel at ({x}, {y}) is ({r}, {g}, {b})")
		return {"r": r, "g": g, "b": b, "success": True}


def _color(context: NodeExecutionContext) -> Tuple[int, int, int]:
	return tuple(to_integer(context.inputs.get(c)) for c in ("r", "g", "b"))


class WFFindColorFlow(WFAutomationFlow):
	failure_outputs = {"x": 0, "y": 0, "found": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		region    = _region(context)
		color     = _color(context)
		tolerance = to_integer(context.inputs.get("tolerance"))
		image     = await run_blocking(self.impl.screen.capture, region, 0)
		ratio     = await run_blocking(self.impl.screen.pixel_ratio)
		hit       = find_color(np.asarray(image.convert("RGB")), color, tolerance)
		if hit is None:
			await context.log(f"Color {color} not found in region {region}", LogLevel.WARNING)
			return {"x": 0, "y": 0, "found": False}
		x = region[0] + int(hit[0] / ratio)
		y = region[1] + int(hit[1] / ratio)
		await context.log(f"Color {color} found at ({x}, {y})")
		return {"x": x, "y": y, "found": True}


class WFWaitForColorFlow(WFAutomationFlow):
	failure_outputs = {"found": False}

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		if result.success and not result.outputs.get("found"):
			result.next_target = "timed_out" if not context.stopped else None
		return result

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		x         = to_integer(context.inputs.get("x"))
		y         = to_integer(context.inputs.get("y"))
		color     = _color(context)
		tolerance = to_integer(context.inputs.get("tolerance"))

		async def check():
			return color_matches(await _pixel(self.impl, x, y), color, tolerance)

		await context.notify(EventType.NODE_WAITING, {"reason": "color", "color": list(color)})
		outcome = await poll_until(
			check       = check,
			interval_ms = DEFAULT_COLOR_POLL_MS,
			timeout_ms  = to_integer(context.inputs.get("timeout_ms")),
			stop_flag   = context.stop_flag,
			slice_ms    = context.options.poll_interval_ms,
		)
		await context.notify(EventType.NODE_RESUMED, {"outcome": outcome.value})
		if outcome == WaitOutcome.TIMED_OUT:
			await context.log(f"Color {color} did not appear at ({x}, {y}) before timeout", LogLevel.WARNING)
		return {"found": outcome == WaitOutcome.SATISFIED}


class WFImageSearch(WFAutomationFlow):
	failure_outputs = {"x": 0, "y": 0, "found": False}

	async def locate(self, context: NodeExecutionContext, template: np.ndarray) -> Optional[Dict[str, Any]]:
		"""Centre of the best match inside the search region, or None"""
		region    = _region(context)
		tolerance = to_integer(context.inputs.get("tolerance"))
		image     = await run_blocking(self.impl.screen.capture, region, 0)
		ratio     = await run_blocking(self.impl.screen.pixel_ratio)
		match     = await run_blocking(match_template, np.asarray(image.convert("RGB")), template, tolerance, pixel_ratio=ratio)
		if match is None:
			return None
		return {
			"x"     : region[0] + match.x + match.width  // 2,
			"y"     : region[1] + match.y + match.height // 2,
			"score" : match.score,
		}


class WFFindImageFlow(WFImageSearch):
	failure_outputs = {"x": 0, "y": 0, "score": 0.0, "found": False}

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		path     = to_string(context.inputs.get("image_path"))
		template = await run_blocking(load_template, path)
		hit      = await self.locate(context, template)
		if hit is None:
			await context.log(f"Image '{path}' not found", LogLevel.WARNING)
			return {"x": 0, "y": 0, "score": 0.0, "found": False}
		await context.log(f"Image '{path}' found at ({hit['x']}, {hit['y']}) score {hit['score']:.3f}")
		return {**hit, "found": True}


class WFWaitForImageFlow(WFImageSearch):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		if result.success and not result.outputs.get("found"):
			result.next_target = "timed_out" if not context.stopped else None
		return result

	async def perform(self, context: NodeExecutionContext) -> Dict[str, Any]:
		path     = to_string(context.inputs.get("image_path"))
		template = await run_blocking(load_template, path)
		hits     = []

		async def check():
			hit = await self.locate(context, template)
			if hit is not None:
				hits.append(hit)
			return hit is not None

		await context.notify(EventType.NODE_WAITING, {"reason": "image", "image_path": path})
		outcome = await poll_until(
			check       = check,
			interval_ms = DEFAULT_IMAGE_POLL_MS,
			timeout_ms  = to_integer(context.inputs.get("timeout_ms")),
			stop_flag   = context.stop_flag,
			slice_ms    = context.options.poll_interval_ms,
		)
		await context.notify(EventType.NODE_RESUMED, {"outcome": outcome.value})

		if outcome != WaitOutcome.SATISFIED:
			if outcome == WaitOutcome.TIMED_OUT:
				await context.log(f"Image '{path}' did not appear before timeout", LogLevel.WARNING)
			return {"x": 0, "y": 0, "found": False}
		hit = hits[-1]
		await context.log(f"Image '{path}' found at ({hit['x']}, {hit['y']})")
		return {"x": hit["x"], "y": hit["y"], "found": True}
