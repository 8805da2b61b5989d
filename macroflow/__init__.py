# Macroflow
#
# Node-graph desktop automation: graphs of value and flow nodes driving pointer,
# keyboard, screen, window, shell, HTTP and file collaborators.

from .backends import (
	ImplementedBackend,
	InputBackend,
	ScreenBackend,
	WindowBackend,
	ShellBackend,
	HttpBackend,
	FileBackend,
)

from .engine import (
	ExecutionEngine,
	ExecutionState,
	ExecutionStatus,
	GraphValidationError,
)

from .event_bus import (
	EventBus,
	EventType,
	ExecutionEvent,
	LogLevel,
	get_event_bus,
	reset_event_bus,
)

from .manager import (
	GraphManager,
	load_graph,
	save_graph,
)

from .schema import (
	Connection,
	ExecutionOptions,
	Graph,
	GraphOptions,
	Variable,
)

from .values import DataType

__all__ = [
	# Collaborators
	"ImplementedBackend",
	"InputBackend",
	"ScreenBackend",
	"WindowBackend",
	"ShellBackend",
	"HttpBackend",
	"FileBackend",
	# Execution
	"ExecutionEngine",
	"ExecutionState",
	"ExecutionStatus",
	"GraphValidationError",
	# Events
	"EventBus",
	"EventType",
	"ExecutionEvent",
	"LogLevel",
	"get_event_bus",
	"reset_event_bus",
	# Storage
	"GraphManager",
	"load_graph",
	"save_graph",
	# Graph model
	"Connection",
	"ExecutionOptions",
	"Graph",
	"GraphOptions",
	"Variable",
	"DataType",
]
