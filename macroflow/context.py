# context

import asyncio
import copy
import threading


from   collections import defaultdict
from   typing      import Any, Dict, List, Optional, Tuple


from   .event_bus  import EventBus, EventType, LogLevel
from   .schema     import Connection, ExecutionOptions, Graph, NodePorts, BaseType, Variable, node_ports
from   .utils      import log_print
from   .values     import coerce


class GraphIndex:
	"""Lookup tables over a graph, built once per run"""

	def __init__(self, graph: Graph):
		self.graph     : Graph                                       = graph
		self.nodes     : Dict[str, BaseType]                         = {n.id: n for n in graph.nodes}
		self.variables : Dict[str, Variable]                         = {v.name: v for v in graph.variables}
		self.ports     : Dict[str, NodePorts]                        = {n.id: node_ports(n, self.variables) for n in graph.nodes}
		self.incoming  : Dict[Tuple[str, str], Connection]           = {}
		self.outgoing  : Dict[Tuple[str, str], List[Connection]]     = defaultdict(list)

		for connection in graph.connections:
			target = (connection.target, connection.target_port)
			# first connection wins when several feed one data input
			if target not in self.incoming:
				self.incoming[target] = connection
			self.outgoing[(connection.source, connection.source_port)].append(connection)


	def node(self, node_id: str) -> Optional[BaseType]:
		return self.nodes.get(node_id)


	def data_source(self, node_id: str, port: str) -> Optional[Connection]:
		"""Connection feeding a data input port"""
		return self.incoming.get((node_id, port))


	def flow_targets(self, node_id: str, port: str) -> List[Connection]:
		"""Connections leaving a flow output port, in declaration order"""
		return self.outgoing.get((node_id, port), [])


class ExecutionContext:
	"""
	Per-run mutable state, exclusively owned by the running task.

	The memo table maps (node_id, port) to (epoch, value). Flow-node outputs are
	stored with epoch None and persist until the node runs again, as do the
	results of pinned value nodes such as Random. Other value-node results are
	only valid for the epoch they were computed in. The epoch
	advances on every state mutation and whenever a node asks for fresh values.
	"""

	def __init__(self,
		graph        : Graph,
		options      : Optional[ExecutionOptions] = None,
		backend      : Any                        = None,
		stop_flag    : Optional[threading.Event]  = None,
		event_bus    : Optional[EventBus]         = None,
		execution_id : Optional[str]              = None,
	):
		self.index        : GraphIndex                                      = GraphIndex(graph)
		self.options      : ExecutionOptions                                = options or ExecutionOptions()
		self.backend      : Any                                             = backend
		self.stop_flag    : threading.Event                                 = stop_flag or threading.Event()
		self.event_bus    : Optional[EventBus]                              = event_bus
		self.execution_id : Optional[str]                                   = execution_id
		self.graph_id     : str                                             = graph.name
		self.variables    : Dict[str, Any]                                  = {v.name: v.initial_value() for v in graph.variables}
		self.memo         : Dict[Tuple[str, str], Tuple[Optional[int], Any]] = {}
		self.epoch        : int                                             = 0
		self.steps        : int                                             = 0
		self.gates        : Dict[str, bool]                                 = {}
		self.loop_signals : Dict[str, asyncio.Event]                        = {}
		self.executors    : Dict[str, Any]                                  = {}
		self.input_hook   : Any                                             = None
		self.logs         : List[Dict[str, Any]]                            = []


	@property
	def graph(self) -> Graph:
		return self.index.graph


	@property
	def stopped(self) -> bool:
		return self.stop_flag.is_set()


	def bump_epoch(self):
		self.epoch += 1


	# =========================================================================
	# MEMO TABLE
	# =========================================================================

	def lookup(self, node_id: str, port: str) -> Tuple[bool, Any]:
		entry = self.memo.get((node_id, port))
		if entry is None:
			return False, None
		epoch, value = entry
		if epoch is not None and epoch != self.epoch:
			return False, None
		return True, value


	def store_value(self, node_id: str, port: str, value: Any, pinned: bool = False):
		"""Memoize a value-node output for the current epoch, or for the whole run when pinned"""
		self.memo[(node_id, port)] = (None if pinned else self.epoch, value)


	def store_outputs(self, node_id: str, outputs: Dict[str, Any]):
		"""Record flow-node outputs; they stay valid until overwritten"""
		if not outputs:
			return
		for port, value in outputs.items():
			self.memo[(node_id, port)] = (None, value)
		self.bump_epoch()


	def stored_output(self, node_id: str, port: str) -> Any:
		entry = self.memo.get((node_id, port))
		return entry[1] if entry is not None else None


	# =========================================================================
	# VARIABLES
	# =========================================================================

	def get_variable(self, name: str) -> Any:
		return self.variables.get(name)


	def set_variable(self, name: str, value: Any) -> Any:
		"""Write a variable, coercing to its declared type; undeclared names store as-is"""
		variable = self.index.variables.get(name)
		if variable is not None:
			value = coerce(value, variable.data_type)
		if isinstance(value, list):
			value = copy.deepcopy(value)
		self.variables[name] = value
		self.bump_epoch()
		return value


	# =========================================================================
	# OBSERVABILITY
	# =========================================================================

	async def emit(self, event_type: EventType, node_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None, error: Optional[str] = None):
		if self.event_bus is None:
			return
		await self.event_bus.emit(
			event_type   = event_type,
			graph_id     = self.graph_id,
			execution_id = self.execution_id,
			node_id      = node_id,
			data         = data,
			error        = error,
		)


	async def log(self, message: str, level: LogLevel = LogLevel.INFO, node_id: Optional[str] = None):
		"""Structured {node_id, message, level} record, kept locally and sent to the bus"""
		level = LogLevel(level)
		self.logs.append({"node_id": node_id, "message": message, "level": level.value})
		if self.event_bus is None:
			if level != LogLevel.INFO:
				log_print(f"[{level.value}] {node_id or '-'}: {message}")
			return
		await self.event_bus.log(
			message      = message,
			level        = level,
			graph_id     = self.graph_id,
			execution_id = self.execution_id,
			node_id      = node_id,
		)
