# nodes

import asyncio
import json
import random
import time


from   typing     import Any, Callable, Dict, Optional


from   .event_bus import EventType, LogLevel
from   .matching  import compare_images, load_image
from   .schema    import DEFAULT_SIMILARITY_MATCH, BaseType
from   .values    import compare_values, compute_math, json_to_value, to_bool, to_float, to_integer, to_number, to_string, value_to_json
from   .waits     import WaitOutcome, cooperative_sleep, poll_until, run_blocking, wait_for_signal


class NodeExecutionContext:
	"""What a node executor sees of the running graph"""

	def __init__(self):
		self.inputs      : Dict[str, Any]     = {}
		self.variables   : Dict[str, Any]     = {}
		self.node_index  : str                = ""
		self.node_config : Optional[BaseType] = None
		self.entry_port  : Optional[str]      = None
		self.backend     : Any                = None
		self.run         : Any                = None   # ExecutionContext
		self.evaluator   : Any                = None   # ValueEvaluator
		self.flow_runner : Optional[Callable] = None   # async (node_id, port, context, depth)
		self.depth       : int                = 0


	@property
	def options(self):
		return self.run.options


	@property
	def stop_flag(self):
		return self.run.stop_flag


	@property
	def stopped(self) -> bool:
		return self.run.stopped


	async def evaluate(self, port: str, fresh: bool = False) -> Any:
		"""Pull the current value of a data input; fresh discards memoized value-node results first"""
		if fresh:
			self.run.bump_epoch()
		value = await self.evaluator.evaluate_input(self.node_index, port, self.run)
		self.inputs[port] = value
		return value


	async def run_flow(self, port: str):
		"""Run everything connected to one of this node's flow outputs, to completion"""
		await self.flow_runner(self.node_index, port, self.run, self.depth + 1)


	def publish(self, outputs: Dict[str, Any]):
		"""Store outputs before control moves on, so downstream readers see them"""
		self.run.store_outputs(self.node_index, outputs)


	async def set_variable(self, name: str, value: Any) -> Any:
		stored = self.run.set_variable(name, value)
		await self.run.emit(EventType.VARIABLE_CHANGED, node_id=self.node_index, data={"name": name, "value": value_to_json(stored)})
		return stored


	async def log(self, message: str, level: LogLevel = LogLevel.INFO):
		await self.run.log(message, level, self.node_index)


	async def notify(self, event_type: EventType, data: Optional[Dict[str, Any]] = None):
		await self.run.emit(event_type, node_id=self.node_index, data=data)


	async def request_input(self, prompt: str) -> Optional[str]:
		if self.run.input_hook is None:
			return None
		return await self.run.input_hook(self.node_index, prompt)


class NodeExecutionResult:
	def __init__(self):
		self.outputs     : Dict[str, Any] = {}
		self.success     : bool           = True
		self.error       : Optional[str]  = None
		self.next_target : Optional[str]  = None


class WFBaseType:
	is_flow : bool = False
	pinned  : bool = False   # value computed once per run, never re-evaluated

	def __init__(self, config: BaseType = None, impl: Any = None, **kwargs):
		self.config = config
		self.impl   = impl

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = NodeExecutionResult()
		return result


class WFNotesType(WFBaseType):
	pass


# =============================================================================
# VALUE NODES
# =============================================================================

class WFValueType(WFBaseType):
	is_flow = False


class WFConstantNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = context.inputs.get("value")
		return result


class WFGetVariableNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["value"] = context.variables.get(self.config.variable)
		return result


class WFMathNode(WFValueType):
	op : str = None

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		try:
			result.outputs["out"] = compute_math(context.inputs.get("a"), context.inputs.get("b"), self.op)
		except Exception as e:
			result.success = False
			result.error   = str(e)
		return result


class WFAddNode(WFMathNode):
	op = "add"


class WFSubtractNode(WFMathNode):
	op = "subtract"


class WFMultiplyNode(WFMathNode):
	op = "multiply"


class WFDivideNode(WFMathNode):
	op = "divide"


class WFModuloNode(WFMathNode):
	op = "modulo"


class WFPowerNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = compute_math(context.inputs.get("base"), context.inputs.get("exponent"), "power")
		return result


def _widen(*values):
	numbers = [to_number(v) for v in values]
	if any(isinstance(n, float) for n in numbers):
		return [float(n) for n in numbers]
	return numbers


class WFAbsNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = abs(to_number(context.inputs.get("value")))
		return result


class WFMinNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		a, b = _widen(context.inputs.get("a"), context.inputs.get("b"))
		result.outputs["out"] = a if a <= b else b
		return result


class WFMaxNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		a, b = _widen(context.inputs.get("a"), context.inputs.get("b"))
		result.outputs["out"] = a if a >= b else b
		return result


class WFClampNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		value, low, high = _widen(context.inputs.get("value"), context.inputs.get("min"), context.inputs.get("max"))
		if value < low:
			value = low
		if value > high:
			value = high
		result.outputs["out"] = value
		return result


class WFRandomNode(WFValueType):
	pinned = True

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		low  = to_float(context.inputs.get("min"))
		high = to_float(context.inputs.get("max"))
		result.outputs["out"] = low + random.random() * (high - low)
		return result


class WFCompareNode(WFValueType):
	accept : Callable[[int], bool] = None

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		order  = compare_values(context.inputs.get("a"), context.inputs.get("b"))
		result.outputs["out"] = self.accept(order)
		return result


class WFEqualsNode(WFCompareNode):
	accept = staticmethod(lambda order: order == 0)


class WFNotEqualsNode(WFCompareNode):
	accept = staticmethod(lambda order: order != 0)


class WFGreaterThanNode(WFCompareNode):
	accept = staticmethod(lambda order: order > 0)


class WFGreaterThanOrEqualNode(WFCompareNode):
	accept = staticmethod(lambda order: order >= 0)


class WFLessThanNode(WFCompareNode):
	accept = staticmethod(lambda order: order < 0)


class WFLessThanOrEqualNode(WFCompareNode):
	accept = staticmethod(lambda order: order <= 0)


class WFAndNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_bool(context.inputs.get("a")) and to_bool(context.inputs.get("b"))
		return result


class WFOrNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_bool(context.inputs.get("a")) or to_bool(context.inputs.get("b"))
		return result


class WFXorNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_bool(context.inputs.get("a")) != to_bool(context.inputs.get("b"))
		return result


class WFNotNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = not to_bool(context.inputs.get("value"))
		return result


# =============================================================================
# STRING NODES
# =============================================================================

class WFConcatNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_string(context.inputs.get("a")) + to_string(context.inputs.get("b"))
		return result


class WFSplitNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		string    = to_string(context.inputs.get("string"))
		delimiter = to_string(context.inputs.get("delimiter"))
		index     = to_integer(context.inputs.get("index"))
		parts     = string.split(delimiter) if delimiter else [string]
		result.outputs["out"] = parts[index] if 0 <= index < len(parts) else ""
		return result


class WFLengthNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = len(to_string(context.inputs.get("string")))
		return result


class WFContainsNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_string(context.inputs.get("substring")) in to_string(context.inputs.get("string"))
		return result


class WFReplaceNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		string = to_string(context.inputs.get("string"))
		old    = to_string(context.inputs.get("old"))
		new    = to_string(context.inputs.get("new"))
		result.outputs["out"] = string.replace(old, new) if old else string
		return result


class WFFormatNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		template = to_string(context.inputs.get("template"))
		result.outputs["out"] = template.replace("{}", to_string(context.inputs.get("arg0")), 1)
		return result


class WFStringJoinNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		separator = to_string(context.inputs.get("separator"))
		parts     = []
		for i in range(self.config.count):
			value = context.inputs.get(f"in{i}")
			if value is not None:
				parts.append(to_string(value))
		result.outputs["out"] = separator.join(parts)
		return result


class WFStringBetweenNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		source = to_string(context.inputs.get("source"))
		before = to_string(context.inputs.get("before"))
		after  = to_string(context.inputs.get("after"))

		out   = ""
		start = source.find(before) if before else 0
		if start >= 0:
			start += len(before)
			end = source.find(after, start) if after else len(source)
			if end >= 0:
				out = source[start:end]
		result.outputs["out"] = out
		return result


class WFStringTrimNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		string = to_string(context.inputs.get("string"))
		mode   = to_integer(context.inputs.get("mode"))
		if mode == 1:
			out = string.lstrip()
		elif mode == 2:
			out = string.rstrip()
		else:
			out = string.strip()
		result.outputs["out"] = out
		return result


class WFExtractAfterNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		source  = to_string(context.inputs.get("source"))
		keyword = to_string(context.inputs.get("keyword"))
		length  = max(0, to_integer(context.inputs.get("length")))

		index = source.find(keyword) if keyword else -1
		if index < 0:
			result.outputs.update({"result": "", "found": False})
		else:
			start = index + len(keyword)
			result.outputs.update({"result": source[start:start + length], "found": True})
		return result


class WFExtractUntilNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		source    = to_string(context.inputs.get("source"))
		keyword   = to_string(context.inputs.get("keyword"))
		delimiter = to_string(context.inputs.get("delimiter"))

		index = source.find(keyword) if keyword else -1
		if index < 0:
			result.outputs.update({"result": "", "found": False})
		else:
			start = index + len(keyword)
			end   = source.find(delimiter, start) if delimiter else -1
			if end < 0:
				end = len(source)
			result.outputs.update({"result": source[start:end], "found": True})
		return result


class WFToIntegerNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_integer(context.inputs.get("value"))
		return result


class WFToFloatNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_float(context.inputs.get("value"))
		return result


class WFToStringNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["out"] = to_string(context.inputs.get("value"))
		return result


class WFGetTimestampNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		now = time.time()
		result.outputs["timestamp"] = int(now * 1000) if to_bool(context.inputs.get("milliseconds")) else int(now)
		return result


# =============================================================================
# ARRAY AND JSON NODES
# =============================================================================

class WFArrayCreateNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["array"] = []
		return result


class WFArrayGetNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		array = context.inputs.get("array")
		index = to_integer(context.inputs.get("index"))

		value = None
		if isinstance(array, str):
			value = array[index] if 0 <= index < len(array) else ""
		elif isinstance(array, list) and 0 <= index < len(array):
			value = array[index]
		result.outputs["value"] = value
		return result


class WFArrayLengthNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		array = context.inputs.get("array")
		result.outputs["length"] = len(array) if isinstance(array, (list, str)) else 0
		return result


class WFJsonParseNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		try:
			data = json.loads(to_string(context.inputs.get("text")))
			result.outputs["value"]   = json_to_value(data)
			result.outputs["success"] = True
		except ValueError:
			result.outputs["value"]   = None
			result.outputs["success"] = False
		return result


class WFJsonStringifyNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs["text"] = json.dumps(value_to_json(context.inputs.get("value")))
		return result


# =============================================================================
# VALUE NODES BACKED BY COLLABORATORS
# =============================================================================

class WFGetWindowPositionNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs.update({"x": 0, "y": 0, "width": 0, "height": 0, "found": False})
		try:
			geometry = await run_blocking(self.impl.window.get_geometry, to_string(context.inputs.get("title")))
			if geometry is not None:
				x, y, width, height = geometry
				result.outputs.update({"x": x, "y": y, "width": width, "height": height, "found": True})
		except Exception as e:
			result.success = False
			result.error   = str(e)
		return result


class WFImageSimilarityNode(WFValueType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.outputs.update({"similarity": 0.0, "match": False})
		try:
			first      = await run_blocking(load_image, to_string(context.inputs.get("image_path1")))
			second     = await run_blocking(load_image, to_string(context.inputs.get("image_path2")))
			similarity = compare_images(first, second, to_integer(context.inputs.get("tolerance")))
			result.outputs.update({"similarity": similarity, "match": similarity >= DEFAULT_SIMILARITY_MATCH})
		except Exception as e:
			result.success = False
			result.error   = str(e)
		return result


# =============================================================================
# FLOW NODES
# =============================================================================

class WFFlowType(WFBaseType):
	"""Flow node with a single next edge; subclasses add their effect"""
	is_flow = True

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.next_target = "flow_out"
		return result


class WFControlType(WFBaseType):
	"""Flow node choosing its own edges"""
	is_flow = True


class WFEntryFlow(WFFlowType):
	pass


class WFBranchFlow(WFControlType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		result.next_target = "true" if to_bool(context.inputs.get("condition")) else "false"
		return result


class WFSequenceFlow(WFControlType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		for i in range(1, self.config.count + 1):
			if context.stopped:
				break
			await context.run_flow(f"out{i}")
		return result


class WFGateFlow(WFFlowType):
	"""
	Gate node executor.

	The latch is scoped to the run and the node. Entering through 'flow_in'
	passes control on only while open; the other flow inputs only move the latch.
	"""
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)

		gates   = context.run.gates
		node_id = context.node_index
		if node_id not in gates:
			gates[node_id] = to_bool(context.inputs.get("open"))

		port = context.entry_port or "flow_in"
		if port == "open_in":
			gates[node_id] = True
		elif port == "close_in":
			gates[node_id] = False
		elif port == "toggle_in":
			gates[node_id] = not gates[node_id]

		is_open = gates[node_id]
		result.outputs["is_open"] = is_open

		if port != "flow_in" or not is_open:
			result.next_target = None

		return result


class WFForLoopFlow(WFControlType):
	async def _iterations(self, context: NodeExecutionContext):
		start = to_integer(context.inputs.get("start"))
		end   = to_integer(context.inputs.get("end"))
		limit = context.options.max_loop_iterations
		if end - start > limit:
			await context.log(f"Loop range [{start}, {end}) capped at {limit} iterations", LogLevel.WARNING)
			end = start + limit
		return range(start, end)

	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		for index in await self._iterations(context):
			if context.stopped:
				break
			context.publish({"index": index})
			await context.run_flow("loop")
		result.next_target = "done"
		return result


class WFWhileLoopFlow(WFControlType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)

		limit     = context.options.max_loop_iterations
		iteration = 0
		while True:
			if context.stopped:
				break
			if iteration >= limit:
				await context.log(f"While loop stopped after reaching the limit of {limit} iterations", LogLevel.WARNING)
				break
			condition = await context.evaluate("condition", fresh=True)
			if not to_bool(condition):
				break
			context.publish({"iteration": iteration})
			await context.run_flow("loop")
			iteration += 1

		result.outputs["iteration"] = iteration
		result.next_target          = "done"
		return result


class WFForLoopAsyncFlow(WFForLoopFlow):
	"""
	For loop stepped by an external Continue signal.

	Each iteration after the first waits for the signal, which arrives either
	through the 'continue_in' flow input or from the engine controller.
	"""
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result  = NodeExecutionResult()
		signals = context.run.loop_signals
		node_id = context.node_index

		if node_id not in signals:
			signals[node_id] = asyncio.Event()

		if context.entry_port == "continue_in":
			signals[node_id].set()
			return result

		signal = signals[node_id]
		signal.clear()

		first = True
		for index in await self._iterations(context):
			if context.stopped:
				break
			if not first:
				await context.notify(EventType.NODE_WAITING, {"reason": "continue", "index": index})
				if not await wait_for_signal(signal, context.stop_flag, context.options.poll_interval_ms):
					break
				await context.notify(EventType.NODE_RESUMED, {"index": index})
			first = False
			context.publish({"index": index})
			await context.run_flow("loop")

		result.next_target = "done"
		return result


class WFWaitForConditionFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)

		async def check():
			return to_bool(await context.evaluate("condition", fresh=True))

		await context.notify(EventType.NODE_WAITING, {"reason": "condition"})
		outcome = await poll_until(
			check       = check,
			interval_ms = to_integer(context.inputs.get("poll_interval_ms")),
			timeout_ms  = to_integer(context.inputs.get("timeout_ms")),
			stop_flag   = context.stop_flag,
			slice_ms    = context.options.poll_interval_ms,
		)
		await context.notify(EventType.NODE_RESUMED, {"outcome": outcome.value})

		if outcome == WaitOutcome.TIMED_OUT:
			await context.log("Condition not met before timeout", LogLevel.WARNING)
			result.next_target = "timed_out"
		elif outcome == WaitOutcome.CANCELLED:
			result.next_target = None
		return result


class WFDelayFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		duration = to_integer(context.inputs.get("duration_ms"))
		if not await cooperative_sleep(duration, context.stop_flag, context.options.poll_interval_ms):
			result.next_target = None
		return result


class WFSetVariableFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		name = self.config.variable
		if not name:
			result.success = False
			result.error   = "No variable selected"
			return result
		result.outputs["result"] = await context.set_variable(name, context.inputs.get("value"))
		return result


class WFArrayPushFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		name  = to_string(context.inputs.get("variable"))
		array = context.variables.get(name)
		array = list(array) if isinstance(array, list) else []
		array.append(context.inputs.get("value"))
		await context.set_variable(name, array)
		result.outputs["length"] = len(array)
		return result


class WFArrayPopFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		name  = to_string(context.inputs.get("variable"))
		array = context.variables.get(name)
		array = list(array) if isinstance(array, list) else []
		result.outputs["value"] = array.pop() if array else None
		await context.set_variable(name, array)
		return result


class WFArraySetFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		name  = to_string(context.inputs.get("variable"))
		index = to_integer(context.inputs.get("index"))
		if index < 0:
			result.success = False
			result.error   = f"Negative array index {index}"
			return result
		array = context.variables.get(name)
		array = list(array) if isinstance(array, list) else []
		if index >= len(array):
			array.extend([None] * (index + 1 - len(array)))
		array[index] = context.inputs.get("value")
		await context.set_variable(name, array)
		return result


class WFPrintFlow(WFFlowType):
	async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
		result = await super().execute(context)
		await context.log(to_string(context.inputs.get("text")))
		return result
