# engine

import asyncio
import threading
import uuid


from   enum       import Enum
from   functools  import partial
from   pydantic   import BaseModel, Field
from   typing     import Any, Dict, List, Optional, Set, Union


from   .backends  import ImplementedBackend
from   .context   import ExecutionContext
from   .evaluator import ValueEvaluator
from   .event_bus import EventBus, EventType, LogLevel
from   .nodes     import NodeExecutionContext, NodeExecutionResult
from   .registry  import create_node
from   .schema    import ExecutionOptions, Graph, node_ports
from   .utils     import get_now_str
from   .values    import DataType, is_compatible, value_to_json
from   .waits     import cooperative_sleep


class ExecutionStatus(str, Enum):
	"""Lifecycle of one run"""
	PENDING   = "pending"
	RUNNING   = "running"
	COMPLETED = "completed"
	FAILED    = "failed"
	CANCELLED = "cancelled"


class GraphValidationError(ValueError):
	"""Graph problem that prevents a run from starting"""

	def __init__(self, errors: List[str]):
		self.errors = errors
		super().__init__("Invalid graph: " + "; ".join(errors))


class StepLimitExceeded(RuntimeError):
	pass


class ExecutionState(BaseModel):
	"""Observable state of a graph run"""
	graph_id      : str
	execution_id  : str
	status        : ExecutionStatus
	current_node  : Optional[str]          = None
	waiting_nodes : List[str]              = Field(default_factory=list)
	steps         : int                    = 0
	variables     : Dict[str, Any]         = Field(default_factory=dict)
	logs          : List[Dict[str, Any]]   = Field(default_factory=list)
	start_time    : Optional[str]          = None
	end_time      : Optional[str]          = None
	error         : Optional[str]          = None


class ExecutionEngine:
	"""
	Runs graphs by walking their flow connections from the Entry node.

	Each run owns an ExecutionContext and is driven by one asyncio task; flow
	nodes execute strictly one at a time in traversal order, pulling their data
	inputs through the value evaluator just before they run.
	"""

	def __init__(self,
		event_bus : Optional[EventBus]           = None,
		backend   : Optional[ImplementedBackend] = None,
		options   : Optional[ExecutionOptions]   = None,
	):
		self.event_bus           : Optional[EventBus]              = event_bus
		self.backend             : Optional[ImplementedBackend]    = backend
		self.options             : ExecutionOptions                = options or ExecutionOptions()
		self.evaluator           : ValueEvaluator                  = ValueEvaluator()
		self.executions          : Dict[str, ExecutionState]       = {}
		self.execution_tasks     : Dict[str, asyncio.Task]         = {}
		self.contexts            : Dict[str, ExecutionContext]     = {}
		self.pending_user_inputs : Dict[str, asyncio.Future]       = {}


	# =========================================================================
	# VALIDATION
	# =========================================================================

	def validate_graph(self, graph: Graph) -> Dict[str, Any]:
		"""
		Validate graph structure before execution.
		Checks:
		- Exactly one Entry node exists
		- Node ids are unique
		- Connections join existing ports, flow to flow and data to data

		Returns dict with 'valid', 'errors', and 'warnings' keys.
		"""
		errors   : List[str] = []
		warnings : List[str] = []

		entries = graph.entry_nodes()
		if len(entries) == 0:
			errors.append("Graph has no Entry node")
		elif len(entries) > 1:
			errors.append(f"Graph can only have one Entry node (found {len(entries)})")

		seen       : Set[str] = set()
		duplicates : Set[str] = set()
		for node in graph.nodes:
			if node.id in seen:
				duplicates.add(node.id)
			seen.add(node.id)
		for node_id in sorted(duplicates):
			errors.append(f"Duplicate node id '{node_id}'")

		variables = {v.name: v for v in graph.variables}
		nodes     = {n.id: n for n in graph.nodes}
		ports     = {n.id: node_ports(n, variables) for n in graph.nodes}

		fed_inputs  : Set[tuple] = set()
		flow_linked : Set[str]   = set()
		for c in graph.connections:
			if c.source not in nodes:
				errors.append(f"Connection from unknown node '{c.source}'")
				continue
			if c.target not in nodes:
				errors.append(f"Connection to unknown node '{c.target}'")
				continue
			source = ports[c.source].output(c.source_port)
			target = ports[c.target].input (c.target_port)
			if source is None:
				errors.append(f"Node '{c.source}' has no output port '{c.source_port}'")
				continue
			if target is None:
				errors.append(f"Node '{c.target}' has no input port '{c.target_port}'")
				continue

			source_flow = source.data_type == DataType.EXECUTION_FLOW
			target_flow = target.data_type == DataType.EXECUTION_FLOW
			if source_flow != target_flow:
				errors.append(f"Connection '{c.source}.{c.source_port}' -> '{c.target}.{c.target_port}' mixes flow and data ports")
				continue

			if source_flow:
				flow_linked.add(c.source)
				flow_linked.add(c.target)
				continue

			key = (c.target, c.target_port)
			if key in fed_inputs:
				warnings.append(f"Input '{c.target}.{c.target_port}' has several connections, only the first is used")
			fed_inputs.add(key)
			if source.data_type is not None and target.data_type is not None and not is_compatible(source.data_type, target.data_type):
				warnings.append(f"Connection '{c.source}.{c.source_port}' -> '{c.target}.{c.target_port}' joins {source.data_type.value} to {target.data_type.value}")

		for node in graph.nodes:
			name = getattr(node, "variable", None)
			if node.type in ("get_variable", "set_variable") and name not in variables:
				warnings.append(f"Node '{node.id}' refers to undeclared variable '{name}'")

		flow_nodes = [
			n.id for n in graph.nodes
			if n.type != "entry" and any(p.data_type == DataType.EXECUTION_FLOW for p in ports[n.id].inputs)
		]
		disconnected = [node_id for node_id in flow_nodes if node_id not in flow_linked]
		if disconnected:
			warnings.append(f"{len(disconnected)} flow node(s) are not connected")

		return {
			"valid"    : len(errors) == 0,
			"errors"   : errors,
			"warnings" : warnings,
		}


	# =========================================================================
	# FLOW EXECUTION
	# =========================================================================

	async def execute_flow(self, node_id: str, entry_port: Optional[str], context: ExecutionContext, depth: int = 0):
		"""
		Run a flow node and everything reachable from the edge it picks.

		A plain chain of next edges is followed iteratively. When an output
		feeds several nodes they run in connection order, each to completion
		before the next starts. Control bodies (loops, sequences) come back in
		here through NodeExecutionContext.run_flow with depth + 1.
		"""
		limit = context.options.max_flow_depth
		if depth > limit:
			await context.log(f"Flow nesting exceeds {limit} levels, branch abandoned", LogLevel.ERROR, node_id)
			return

		target = (node_id, entry_port)
		while target is not None:
			if context.stopped:
				return
			node_id, entry_port = target
			next_port = await self._run_node(node_id, entry_port, context, depth)
			if next_port is None or context.stopped:
				return
			connections = context.index.flow_targets(node_id, next_port)
			if not connections:
				return
			for connection in connections[:-1]:
				await self.execute_flow(connection.target, connection.target_port, context, depth + 1)
				if context.stopped:
					return
			target = (connections[-1].target, connections[-1].target_port)


	async def _run_port(self, node_id: str, port: str, context: ExecutionContext, depth: int):
		"""Run every flow chain leaving one output port, in connection order"""
		for connection in context.index.flow_targets(node_id, port):
			if context.stopped:
				return
			await self.execute_flow(connection.target, connection.target_port, context, depth)


	async def _run_node(self, node_id: str, entry_port: Optional[str], context: ExecutionContext, depth: int) -> Optional[str]:
		"""Execute one flow node; returns the output port control leaves through"""
		context.steps += 1
		if context.steps > context.options.max_steps:
			raise StepLimitExceeded(f"Run exceeded {context.options.max_steps} flow steps")

		node     = context.index.node(node_id)
		executor = context.executors.get(node_id)
		if node is None or executor is None or not executor.is_flow:
			await context.log(f"Control reached '{node_id}', which is not a flow node", LogLevel.WARNING, node_id)
			return None

		state = self.executions.get(context.execution_id)
		if state is not None:
			state.current_node = node_id
			state.steps        = context.steps

		await context.emit(
			EventType.NODE_STARTED,
			node_id = node_id,
			data    = {"node_type": node.type, "node_label": node.label or node.type, "entry_port": entry_port},
		)

		delay = context.options.node_delay
		if delay > 0 and not await cooperative_sleep(delay * 1000.0, context.stop_flag, context.options.poll_interval_ms):
			return None

		node_context = NodeExecutionContext()
		node_context.variables   = context.variables
		node_context.node_index  = node_id
		node_context.node_config = node
		node_context.entry_port  = entry_port
		node_context.backend     = context.backend
		node_context.run         = context
		node_context.evaluator   = self.evaluator
		node_context.flow_runner = self._run_port
		node_context.depth       = depth

		try:
			node_context.inputs = await self.evaluator.gather_inputs(node_id, context)
			result = await executor.execute(node_context)
		except StepLimitExceeded:
			raise
		except Exception as e:
			result = NodeExecutionResult()
			result.success = False
			result.error   = f"{type(e).__name__}: {e}"
			if context.index.ports[node_id].output("flow_out") is not None:
				result.next_target = "flow_out"

		context.store_outputs(node_id, result.outputs)

		if result.success:
			await context.emit(
				EventType.NODE_COMPLETED,
				node_id = node_id,
				data    = {"outputs": {k: value_to_json(v) for k, v in result.outputs.items()}, "next": result.next_target},
			)
		else:
			await context.log(result.error or "Node failed", LogLevel.ERROR, node_id)
			await context.emit(EventType.NODE_FAILED, node_id=node_id, error=result.error)

		return result.next_target


	# =========================================================================
	# RUN CONTROL
	# =========================================================================

	def _prepare(self, graph: Graph, backend: Optional[ImplementedBackend], options: Optional[ExecutionOptions]) -> ExecutionContext:
		validation = self.validate_graph(graph)
		if not validation["valid"]:
			raise GraphValidationError(validation["errors"])

		execution_id = str(uuid.uuid4())
		context = ExecutionContext(
			graph        = graph,
			options      = options or self.options,
			backend      = backend or self.backend or ImplementedBackend(),
			stop_flag    = threading.Event(),
			event_bus    = self.event_bus,
			execution_id = execution_id,
		)
		context.executors  = {node.id: create_node(node, context.backend) for node in graph.nodes}
		context.input_hook = partial(self._request_user_input, context)

		self.contexts  [execution_id] = context
		self.executions[execution_id] = ExecutionState(
			graph_id     = context.graph_id,
			execution_id = execution_id,
			status       = ExecutionStatus.PENDING,
			variables    = {k: value_to_json(v) for k, v in context.variables.items()},
		)
		return context


	async def start_execution(self,
		graph   : Graph,
		backend : Optional[ImplementedBackend] = None,
		options : Optional[ExecutionOptions]   = None,
	) -> str:
		"""Validate the graph and launch a run in the background; returns its execution id"""
		context = self._prepare(graph, backend, options)
		task = asyncio.create_task(self._execute(context))
		self.execution_tasks[context.execution_id] = task
		return context.execution_id


	async def run(self,
		graph   : Graph,
		backend : Optional[ImplementedBackend] = None,
		options : Optional[ExecutionOptions]   = None,
	) -> ExecutionState:
		"""Validate the graph and run it to completion"""
		context = self._prepare(graph, backend, options)
		await self._execute(context)
		return self.executions[context.execution_id]


	async def _execute(self, context: ExecutionContext):
		state = self.executions[context.execution_id]
		state.status     = ExecutionStatus.RUNNING
		state.start_time = get_now_str()

		await context.emit(EventType.EXECUTION_STARTED, data={"variables": dict(state.variables)})

		try:
			entry = context.graph.entry_nodes()[0]
			await self.execute_flow(entry.id, None, context)

			if context.stopped:
				state.status = ExecutionStatus.CANCELLED
			else:
				state.status = ExecutionStatus.COMPLETED

		except Exception as e:
			state.status = ExecutionStatus.CANCELLED if context.stopped else ExecutionStatus.FAILED
			state.error  = str(e)
			await context.log(str(e), LogLevel.ERROR)

		finally:
			state.end_time     = get_now_str()
			state.current_node = None
			state.steps        = context.steps
			state.variables    = {k: value_to_json(v) for k, v in context.variables.items()}
			state.logs         = list(context.logs)
			self._release_user_inputs(context.execution_id)
			if context.options.persist_variables:
				for variable in context.graph.variables:
					if variable.name in context.variables:
						variable.default = value_to_json(context.variables[variable.name])

		if state.status == ExecutionStatus.COMPLETED:
			await context.emit(EventType.EXECUTION_COMPLETED, data={"variables": state.variables, "steps": state.steps})
		elif state.status == ExecutionStatus.CANCELLED:
			await context.emit(EventType.EXECUTION_CANCELLED, data={"variables": state.variables, "steps": state.steps})
		else:
			await context.emit(EventType.EXECUTION_FAILED, error=state.error)


	async def wait_execution(self, execution_id: str, timeout: Optional[float] = None) -> Optional[ExecutionState]:
		"""Wait for a background run to finish and return its final state"""
		task = self.execution_tasks.get(execution_id)
		if task is not None:
			await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
		return self.executions.get(execution_id)


	async def cancel_execution(self, execution_id: Optional[str] = None) -> Union[Optional[ExecutionState], List[ExecutionState]]:
		"""
		Raise the stop flag of a run (every active run when no id is given).

		Cancellation is cooperative: the run notices the flag at its next check
		and winds down, ending in the cancelled state.
		"""
		if not execution_id:
			return await self._cancel_all_executions()

		context = self.contexts.get(execution_id)
		state   = self.executions.get(execution_id)
		if context is None or state is None:
			return None

		if state.status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING):
			context.stop_flag.set()
			self._release_user_inputs(execution_id)
			await context.log("Cancellation requested", LogLevel.WARNING)
		return state


	async def _cancel_all_executions(self) -> List[ExecutionState]:
		states = []
		for execution_id in list(self.executions.keys()):
			state = await self.cancel_execution(execution_id)
			if state is not None:
				states.append(state)
		return states


	async def continue_loop(self, execution_id: str, node_id: Optional[str] = None) -> bool:
		"""Send the Continue signal to one waiting async loop, or to all of them"""
		context = self.contexts.get(execution_id)
		if context is None:
			return False
		if node_id:
			signal  = context.loop_signals.get(node_id)
			signals = [signal] if signal is not None else []
		else:
			signals = list(context.loop_signals.values())
		for signal in signals:
			signal.set()
		return len(signals) > 0


	# =========================================================================
	# USER INPUT
	# =========================================================================

	async def _request_user_input(self, context: ExecutionContext, node_id: str, prompt: str) -> Optional[str]:
		"""Suspend a Read Input node until an answer arrives, the run stops, or the timeout elapses"""
		if context.stopped:
			return None

		future    = asyncio.get_running_loop().create_future()
		input_key = f"{context.execution_id}:{node_id}"
		self.pending_user_inputs[input_key] = future

		state = self.executions.get(context.execution_id)
		if state is not None:
			state.waiting_nodes.append(node_id)

		await context.emit(EventType.USER_INPUT_REQUESTED, node_id=node_id, data={"prompt": prompt})

		timeout = context.options.user_input_timeout
		try:
			return await asyncio.wait_for(future, timeout=timeout if timeout > 0 else None)
		except asyncio.TimeoutError:
			return None
		finally:
			self.pending_user_inputs.pop(input_key, None)
			if state is not None and node_id in state.waiting_nodes:
				state.waiting_nodes.remove(node_id)


	async def provide_user_input(self, execution_id: str, node_id: str, user_input: Any) -> bool:
		"""Answer a waiting Read Input node"""
		input_key = f"{execution_id}:{node_id}"
		future    = self.pending_user_inputs.pop(input_key, None)
		if future is None or future.done():
			return False
		future.set_result(user_input)

		context = self.contexts.get(execution_id)
		if context is not None:
			await context.emit(EventType.USER_INPUT_RECEIVED, node_id=node_id, data={"input": user_input})
		return True


	def _release_user_inputs(self, execution_id: str):
		prefix = execution_id + ":"
		for key in [k for k in self.pending_user_inputs if k.startswith(prefix)]:
			future = self.pending_user_inputs.pop(key)
			if not future.done():
				future.set_result(None)


	# =========================================================================
	# QUERIES
	# =========================================================================

	def get_execution_state(self, execution_id: Optional[str] = None) -> Union[Optional[ExecutionState], Dict[str, ExecutionState]]:
		if not execution_id:
			return self._get_all_execution_states()
		return self.executions.get(execution_id)


	def _get_all_execution_states(self) -> Dict[str, ExecutionState]:
		return dict(self.executions)


	def list_executions(self) -> List[str]:
		return list(self.executions.keys())
