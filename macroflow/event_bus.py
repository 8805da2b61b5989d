# event_bus

import json


from   collections import deque
from   datetime    import datetime
from   enum        import Enum
from   fastapi     import WebSocket
from   inspect     import iscoroutinefunction
from   pydantic    import BaseModel
from   typing      import Any, Callable, Deque, Dict, List, Optional


from   .utils      import log_print


DEFAULT_MAX_HISTORY     : int = 1000
DEFAULT_HISTORY_REPLAY  : int = 50


class EventType(str, Enum):
	# System events
	ERROR                 = "error"
	WARNING               = "warning"
	INFO                  = "info"

	# Manager events
	MANAGER_CLEARED       = "manager.cleared"
	MANAGER_GRAPH_CREATED = "manager.graph_created"
	MANAGER_GRAPH_ADDED   = "manager.graph_added"
	MANAGER_GRAPH_REMOVED = "manager.graph_removed"
	MANAGER_GRAPH_GOT     = "manager.graph_got"
	MANAGER_GRAPH_LISTED  = "manager.graph_listed"

	# Execution events
	EXECUTION_STARTED     = "execution.started"
	EXECUTION_COMPLETED   = "execution.completed"
	EXECUTION_FAILED      = "execution.failed"
	EXECUTION_CANCELLED   = "execution.cancelled"

	# Node events
	NODE_STARTED          = "node.started"
	NODE_COMPLETED        = "node.completed"
	NODE_FAILED           = "node.failed"
	NODE_WAITING          = "node.waiting"
	NODE_RESUMED          = "node.resumed"
	NODE_LOG              = "node.log"

	# Data events
	VARIABLE_CHANGED      = "variable.changed"

	# User events
	USER_INPUT_REQUESTED  = "user_input.requested"
	USER_INPUT_RECEIVED   = "user_input.received"


class LogLevel(str, Enum):
	INFO    = "info"
	WARNING = "warning"
	ERROR   = "error"


class ExecutionEvent(BaseModel):
	event_id     : str
	event_type   : EventType
	timestamp    : str
	graph_id     : Optional[str]            = None
	execution_id : Optional[str]            = None
	node_id      : Optional[str]            = None
	data         : Optional[Dict[str, Any]] = None
	error        : Optional[str]            = None

	def concerns(self, execution_id: Optional[str]) -> bool:
		"""Whether a watcher scoped to execution_id (None = everything) should see this event"""
		return execution_id is None or self.execution_id in (None, execution_id)


class EventBus:
	"""
	Observability channel for graph runs.

	Local subscribers register per event type, or for every event with None.
	Websocket watchers receive the events of one execution, or all of them,
	and get a replay of recent matching history when they connect.
	"""

	def __init__(self, max_history: int = DEFAULT_MAX_HISTORY):
		self._subscribers : Dict[Optional[EventType], List[Callable]] = {}
		self._watchers    : Dict[WebSocket, Optional[str]]            = {}
		self._history     : Deque[ExecutionEvent]                     = deque(maxlen=max_history)
		self._sequence    : int                                       = 0


	def subscribe(self, event_type: Optional[EventType], callback: Callable):
		"""Call callback (sync or async) for every event of event_type; None receives every event"""
		self._subscribers.setdefault(event_type, []).append(callback)


	def unsubscribe(self, event_type: Optional[EventType], callback: Callable):
		callbacks = self._subscribers.get(event_type)
		if callbacks and callback in callbacks:
			callbacks.remove(callback)


	async def publish(self, event: ExecutionEvent):
		self._history.append(event)

		# Type-specific subscribers first, then catch-all ones
		callbacks = self._subscribers.get(event.event_type, []) + self._subscribers.get(None, [])
		for callback in callbacks:
			try:
				if iscoroutinefunction(callback):
					await callback(event)
				else:
					callback(event)
			except Exception as e:
				log_print(f"Event subscriber failed on {event.event_type.value}: {e}")

		await self._notify_watchers(event)


	async def _notify_watchers(self, event: ExecutionEvent):
		watchers = [ws for ws, scope in self._watchers.items() if event.concerns(scope)]
		if not watchers:
			return

		message = json.dumps({
			"type"  : "execution_event",
			"event" : event.model_dump(mode="json"),
		})

		for websocket in watchers:
			try:
				await websocket.send_text(message)
			except Exception:
				self._watchers.pop(websocket, None)


	async def add_websocket_client(self, websocket: WebSocket, execution_id: Optional[str] = None):
		"""Accept a watcher, replay recent history in its scope, then stream live events"""
		await websocket.accept()
		self._watchers[websocket] = execution_id

		replay = self.get_event_history(execution_id=execution_id, limit=DEFAULT_HISTORY_REPLAY)
		if replay:
			await websocket.send_text(json.dumps({
				"type"   : "event_history",
				"events" : [e.model_dump(mode="json") for e in replay],
			}))


	def remove_websocket_client(self, websocket: WebSocket):
		self._watchers.pop(websocket, None)


	def get_event_history(self,
		graph_id     : Optional[str]       = None,
		execution_id : Optional[str]       = None,
		node_id      : Optional[str]       = None,
		event_type   : Optional[EventType] = None,
		limit        : int                 = 100
	) -> List[ExecutionEvent]:
		"""Most recent events, oldest first, optionally narrowed to a graph, run, node or kind"""
		events = [
			e for e in self._history
			if  (graph_id     is None or e.graph_id     == graph_id    )
			and (execution_id is None or e.execution_id == execution_id)
			and (node_id      is None or e.node_id      == node_id     )
			and (event_type   is None or e.event_type   == event_type  )
		]
		return events[-limit:] if limit > 0 else events


	def clear_history(self):
		self._history.clear()


	def _next_event_id(self) -> str:
		self._sequence += 1
		return f"evt_{self._sequence:08d}"


	async def emit(self,
		event_type   : EventType,
		graph_id     : Optional[str]            = None,
		execution_id : Optional[str]            = None,
		node_id      : Optional[str]            = None,
		data         : Optional[Dict[str, Any]] = None,
		error        : Optional[str]            = None
	):
		await self.publish(ExecutionEvent(
			event_id     = self._next_event_id(),
			event_type   = event_type,
			timestamp    = datetime.now().isoformat(),
			graph_id     = graph_id,
			execution_id = execution_id,
			node_id      = node_id,
			data         = data,
			error        = error,
		))


	async def log(self,
		message      : str,
		level        : LogLevel      = LogLevel.INFO,
		graph_id     : Optional[str] = None,
		execution_id : Optional[str] = None,
		node_id      : Optional[str] = None,
	):
		"""Emit the {node_id, message, level} record of a run as a node.log event"""
		await self.emit(
			event_type   = EventType.NODE_LOG,
			graph_id     = graph_id,
			execution_id = execution_id,
			node_id      = node_id,
			data         = {"message": message, "level": LogLevel(level).value},
		)


_global_event_bus : Optional[EventBus] = None


def get_event_bus() -> EventBus:
	"""Process-wide bus shared by the server components"""
	global _global_event_bus
	if _global_event_bus is None:
		_global_event_bus = EventBus()
	return _global_event_bus


def reset_event_bus():
	global _global_event_bus
	_global_event_bus = None
