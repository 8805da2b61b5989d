# schema

from __future__ import annotations


import copy


from   enum     import Enum
from   pydantic import BaseModel, Field
from   typing   import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union, get_args, get_origin
from   uuid     import uuid4


from   .values  import DataType, Number, coerce, default_for


_NODE_INFO : Dict[str, Dict[str, Any]] = {}


def node_info(title: str = None, description: str = None, icon: str = None, section: str = "Miscellanea", visible: bool = True, **kwargs):
	def decorator(cls):
		_NODE_INFO[cls.__name__] = {
			"title"       : title or cls.__name__,
			"description" : description,
			"icon"        : icon,
			"section"     : section,
			"visible"     : visible,
			**kwargs,
		}
		return cls
	return decorator


class FieldRole(str, Enum):
	ANNOTATION  = "annotation"
	CONSTANT    = "constant"
	INPUT       = "input"
	OUTPUT      = "output"
	FLOW_INPUT  = "flow_input"
	FLOW_OUTPUT = "flow_output"


def generate_id():
	return str(uuid4())


class Port(BaseModel):
	name      : str
	data_type : Optional[DataType] = None   # None accepts any kind
	is_input  : bool               = True


class NodePorts(BaseModel):
	inputs  : List[Port] = Field(default_factory=list)
	outputs : List[Port] = Field(default_factory=list)

	def input(self, name: str) -> Optional[Port]:
		return next((p for p in self.inputs if p.name == name), None)

	def output(self, name: str) -> Optional[Port]:
		return next((p for p in self.outputs if p.name == name), None)


@node_info(visible=False)
class BaseType(BaseModel):
	type     : Annotated[Literal["base_type"]     , FieldRole.CONSTANT  ] = "base_type"
	id       : Annotated[str                      , FieldRole.ANNOTATION] = Field(default_factory=generate_id)
	label    : Annotated[Optional[str]            , FieldRole.ANNOTATION] = Field(default=None,       description="Optional display name shown in logs and in the editor")
	position : Annotated[Tuple[float, float]      , FieldRole.ANNOTATION] = Field(default=(0.0, 0.0), description="Editor canvas position; ignored by the engine")
	extra    : Annotated[Optional[Dict[str, Any]] , FieldRole.ANNOTATION] = None

	def dynamic_ports(self) -> Tuple[List[Port], List[Port]]:
		"""Ports whose number depends on node configuration"""
		return [], []


@node_info(visible=False)
class ComponentType(BaseModel):
	type : Annotated[Literal["component_type"], FieldRole.CONSTANT] = "component_type"


@node_info(visible=False)
class ValueType(BaseType):
	"""Data-only node: computed on demand and memoized, never receives control"""
	type : Annotated[Literal["value_type"], FieldRole.CONSTANT] = "value_type"


@node_info(visible=False)
class ControlType(BaseType):
	"""Flow node that declares its own outgoing flow edges"""
	type    : Annotated[Literal["control_type"], FieldRole.CONSTANT  ] = "control_type"
	flow_in : Annotated[Optional[Any]          , FieldRole.FLOW_INPUT] = Field(default=None, description="Receives control from the upstream flow node")


@node_info(visible=False)
class FlowType(ControlType):
	"""Flow node with a single 'next' edge"""
	type     : Annotated[Literal["flow_type"], FieldRole.CONSTANT   ] = "flow_type"
	flow_out : Annotated[Optional[Any]       , FieldRole.FLOW_OUTPUT] = Field(default=None, description="Passes control to the next flow node once this node is done")


# =============================================================================
# CONTROL FLOW NODES
# =============================================================================

DEFAULT_SEQUENCE_OUTPUTS     : int = 3
DEFAULT_FOR_LOOP_START       : int = 0
DEFAULT_FOR_LOOP_END         : int = 10
DEFAULT_WAIT_POLL_INTERVAL   : int = 100
DEFAULT_WAIT_TIMEOUT         : int = 0       # 0 = wait forever
DEFAULT_DELAY_DURATION_MS    : int = 1000


@node_info(
	title       = "Entry",
	description = "Where execution starts; a graph needs exactly one",
	icon        = "▶",
	section     = "Flow Control",
)
class EntryFlow(BaseType):
	type     : Annotated[Literal["entry"], FieldRole.CONSTANT   ] = "entry"
	flow_out : Annotated[Optional[Any]   , FieldRole.FLOW_OUTPUT] = Field(default=None, description="First flow node to run")


@node_info(
	title       = "Notes",
	description = "Free text comment, not executed",
	icon        = "🗒",
	section     = "Flow Control",
)
class NotesNode(BaseType):
	type : Annotated[Literal["notes"], FieldRole.CONSTANT  ] = "notes"
	text : Annotated[str             , FieldRole.ANNOTATION] = Field(default="", description="Comment text")


@node_info(
	title       = "Branch",
	description = "Routes control to 'true' or 'false' depending on the condition",
	icon        = "⑂",
	section     = "Flow Control",
)
class BranchFlow(ControlType):
	type      : Annotated[Literal["branch"], FieldRole.CONSTANT   ] = "branch"
	condition : Annotated[bool             , FieldRole.INPUT      ] = Field(default=False, description="Condition deciding which edge fires")
	true      : Annotated[Optional[Any]    , FieldRole.FLOW_OUTPUT] = Field(default=None,  description="Taken when the condition holds")
	false     : Annotated[Optional[Any]    , FieldRole.FLOW_OUTPUT] = Field(default=None,  description="Taken when the condition does not hold")


@node_info(
	title       = "Sequence",
	description = "Runs every numbered output in order, each to completion",
	icon        = "⇶",
	section     = "Flow Control",
)
class SequenceFlow(ControlType):
	"""Outputs are named out1..outN; each subgraph completes before the next one starts."""
	type  : Annotated[Literal["sequence"], FieldRole.CONSTANT  ] = "sequence"
	count : Annotated[int                , FieldRole.ANNOTATION] = Field(default=DEFAULT_SEQUENCE_OUTPUTS, ge=1, description="Number of numbered outputs")

	def dynamic_ports(self) -> Tuple[List[Port], List[Port]]:
		outputs = [Port(name=f"out{i}", data_type=DataType.EXECUTION_FLOW, is_input=False) for i in range(1, self.count + 1)]
		return [], outputs


@node_info(
	title       = "Gate",
	description = "On/off latch; while closed, control entering the gate goes nowhere",
	icon        = "🚧",
	section     = "Flow Control",
)
class GateFlow(FlowType):
	"""
	Gate node.

	The latch state lives for one run. It starts from the 'open' input the
	first time any gate input fires, and the 'open_in', 'close_in' and
	'toggle_in' flow inputs change it without passing control on.
	"""
	type      : Annotated[Literal["gate"], FieldRole.CONSTANT  ] = "gate"
	open_in   : Annotated[Optional[Any]  , FieldRole.FLOW_INPUT] = Field(default=None, description="Opens the gate")
	close_in  : Annotated[Optional[Any]  , FieldRole.FLOW_INPUT] = Field(default=None, description="Closes the gate")
	toggle_in : Annotated[Optional[Any]  , FieldRole.FLOW_INPUT] = Field(default=None, description="Flips the gate state")
	open      : Annotated[bool           , FieldRole.INPUT     ] = Field(default=True, description="Initial state of the latch")
	is_open   : Annotated[bool           , FieldRole.OUTPUT    ] = Field(default=True, description="Current state of the latch")


@node_info(
	title       = "For Loop",
	description = "Runs the loop body for every index in [start, end)",
	icon        = "🔁",
	section     = "Flow Control",
)
class ForLoopFlow(ControlType):
	type  : Annotated[Literal["for_loop"], FieldRole.CONSTANT   ] = "for_loop"
	start : Annotated[int                , FieldRole.INPUT      ] = Field(default=DEFAULT_FOR_LOOP_START, description="First index (inclusive)")
	end   : Annotated[int                , FieldRole.INPUT      ] = Field(default=DEFAULT_FOR_LOOP_END,   description="Last index (exclusive)")
	loop  : Annotated[Optional[Any]      , FieldRole.FLOW_OUTPUT] = Field(default=None,                   description="Loop body, run once per index")
	index : Annotated[int                , FieldRole.OUTPUT     ] = Field(default=0,                      description="Index of the current iteration")
	done  : Annotated[Optional[Any]      , FieldRole.FLOW_OUTPUT] = Field(default=None,                   description="Taken after the last iteration")


@node_info(
	title       = "While Loop",
	description = "Runs the loop body while the condition holds",
	icon        = "🔄",
	section     = "Flow Control",
)
class WhileLoopFlow(ControlType):
	type      : Annotated[Literal["while_loop"], FieldRole.CONSTANT   ] = "while_loop"
	condition : Annotated[bool                 , FieldRole.INPUT      ] = Field(default=True, description="Re-evaluated before every iteration")
	loop      : Annotated[Optional[Any]        , FieldRole.FLOW_OUTPUT] = Field(default=None, description="Loop body")
	iteration : Annotated[int                  , FieldRole.OUTPUT     ] = Field(default=0,    description="Iterations completed before the current one; the total once done")
	done      : Annotated[Optional[Any]        , FieldRole.FLOW_OUTPUT] = Field(default=None, description="Taken when the loop ends")


@node_info(
	title       = "For Loop (Async)",
	description = "For loop that waits for a Continue signal between iterations",
	icon        = "⏯",
	section     = "Flow Control",
)
class ForLoopAsyncFlow(ControlType):
	type        : Annotated[Literal["for_loop_async"], FieldRole.CONSTANT   ] = "for_loop_async"
	continue_in : Annotated[Optional[Any]            , FieldRole.FLOW_INPUT ] = Field(default=None,                   description="Signals the waiting loop to run its next iteration")
	start       : Annotated[int                      , FieldRole.INPUT      ] = Field(default=DEFAULT_FOR_LOOP_START, description="First index (inclusive)")
	end         : Annotated[int                      , FieldRole.INPUT      ] = Field(default=DEFAULT_FOR_LOOP_END,   description="Last index (exclusive)")
	loop        : Annotated[Optional[Any]            , FieldRole.FLOW_OUTPUT] = Field(default=None,                   description="Loop body")
	index       : Annotated[int                      , FieldRole.OUTPUT     ] = Field(default=0,                      description="Index of the current iteration")
	done        : Annotated[Optional[Any]            , FieldRole.FLOW_OUTPUT] = Field(default=None,                   description="Taken after the last iteration")


@node_info(
	title       = "Wait For Condition",
	description = "Polls a condition until it holds or the timeout expires",
	icon        = "⏳",
	section     = "Flow Control",
)
class WaitForConditionFlow(FlowType):
	type             : Annotated[Literal["wait_for_condition"], FieldRole.CONSTANT   ] = "wait_for_condition"
	condition        : Annotated[bool                         , FieldRole.INPUT      ] = Field(default=False,                      description="Condition polled at every interval")
	poll_interval_ms : Annotated[int                          , FieldRole.INPUT      ] = Field(default=DEFAULT_WAIT_POLL_INTERVAL, description="Milliseconds between two polls")
	timeout_ms       : Annotated[int                          , FieldRole.INPUT      ] = Field(default=DEFAULT_WAIT_TIMEOUT,       description="Give up after this many milliseconds (0 waits forever)")
	timed_out        : Annotated[Optional[Any]                , FieldRole.FLOW_OUTPUT] = Field(default=None,                       description="Taken instead of flow_out when the timeout expires")


@node_info(
	title       = "Delay",
	description = "Suspends this flow for a while without blocking anything else",
	icon        = "⏸",
	section     = "Flow Control",
)
class DelayFlow(FlowType):
	type        : Annotated[Literal["delay"], FieldRole.CONSTANT] = "delay"
	duration_ms : Annotated[int             , FieldRole.INPUT   ] = Field(default=DEFAULT_DELAY_DURATION_MS, description="Pause duration in milliseconds")


# =============================================================================
# VARIABLE NODES
# =============================================================================

@node_info(
	title       = "Get Variable",
	description = "Reads a graph variable",
	icon        = "📥",
	section     = "Variables",
)
class GetVariableNode(ValueType):
	type     : Annotated[Literal["get_variable"], FieldRole.CONSTANT  ] = "get_variable"
	variable : Annotated[str                    , FieldRole.ANNOTATION] = Field(default="",   description="Name of the variable to read")
	value    : Annotated[Any                    , FieldRole.OUTPUT    ] = Field(default=None, description="Current value of the variable")


@node_info(
	title       = "Set Variable",
	description = "Writes a graph variable",
	icon        = "📤",
	section     = "Variables",
)
class SetVariableFlow(FlowType):
	type     : Annotated[Literal["set_variable"], FieldRole.CONSTANT  ] = "set_variable"
	variable : Annotated[str                    , FieldRole.ANNOTATION] = Field(default="",   description="Name of the variable to write")
	value    : Annotated[Any                    , FieldRole.INPUT     ] = Field(default=None, description="New value, coerced to the declared variable type")
	result   : Annotated[Any                    , FieldRole.OUTPUT    ] = Field(default=None, description="Value actually stored")


# =============================================================================
# MATH NODES
# =============================================================================

@node_info(title="Add", description="a + b", icon="+", section="Math")
class AddNode(ValueType):
	type : Annotated[Literal["add"], FieldRole.CONSTANT] = "add"
	a    : Annotated[Number        , FieldRole.INPUT   ] = 0
	b    : Annotated[Number        , FieldRole.INPUT   ] = 0
	out  : Annotated[Number        , FieldRole.OUTPUT  ] = 0


@node_info(title="Subtract", description="a - b", icon="−", section="Math")
class SubtractNode(ValueType):
	type : Annotated[Literal["subtract"], FieldRole.CONSTANT] = "subtract"
	a    : Annotated[Number             , FieldRole.INPUT   ] = 0
	b    : Annotated[Number             , FieldRole.INPUT   ] = 0
	out  : Annotated[Number             , FieldRole.OUTPUT  ] = 0


@node_info(title="Multiply", description="a * b", icon="×", section="Math")
class MultiplyNode(ValueType):
	type : Annotated[Literal["multiply"], FieldRole.CONSTANT] = "multiply"
	a    : Annotated[Number             , FieldRole.INPUT   ] = 0
	b    : Annotated[Number             , FieldRole.INPUT   ] = 1
	out  : Annotated[Number             , FieldRole.OUTPUT  ] = 0


@node_info(title="Divide", description="a / b; a zero divisor counts as one", icon="÷", section="Math")
class DivideNode(ValueType):
	type : Annotated[Literal["divide"], FieldRole.CONSTANT] = "divide"
	a    : Annotated[Number           , FieldRole.INPUT   ] = 0
	b    : Annotated[Number           , FieldRole.INPUT   ] = 1
	out  : Annotated[Number           , FieldRole.OUTPUT  ] = 0


@node_info(title="Modulo", description="a mod b; a zero divisor counts as one", icon="%", section="Math")
class ModuloNode(ValueType):
	type : Annotated[Literal["modulo"], FieldRole.CONSTANT] = "modulo"
	a    : Annotated[Number           , FieldRole.INPUT   ] = 0
	b    : Annotated[Number           , FieldRole.INPUT   ] = 1
	out  : Annotated[Number           , FieldRole.OUTPUT  ] = 0


@node_info(title="Power", description="base ** exponent", icon="^", section="Math")
class PowerNode(ValueType):
	type     : Annotated[Literal["power"], FieldRole.CONSTANT] = "power"
	base     : Annotated[Number          , FieldRole.INPUT   ] = 2
	exponent : Annotated[Number          , FieldRole.INPUT   ] = 2
	out      : Annotated[float           , FieldRole.OUTPUT  ] = 0.0


@node_info(title="Abs", description="Absolute value", icon="|x|", section="Math")
class AbsNode(ValueType):
	type  : Annotated[Literal["abs"], FieldRole.CONSTANT] = "abs"
	value : Annotated[Number        , FieldRole.INPUT   ] = 0
	out   : Annotated[Number        , FieldRole.OUTPUT  ] = 0


@node_info(title="Min", description="Smaller of a and b", icon="⌊", section="Math")
class MinNode(ValueType):
	type : Annotated[Literal["min"], FieldRole.CONSTANT] = "min"
	a    : Annotated[Number        , FieldRole.INPUT   ] = 0
	b    : Annotated[Number        , FieldRole.INPUT   ] = 0
	out  : Annotated[Number        , FieldRole.OUTPUT  ] = 0


@node_info(title="Max", description="Larger of a and b", icon="⌈", section="Math")
class MaxNode(ValueType):
	type : Annotated[Literal["max"], FieldRole.CONSTANT] = "max"
	a    : Annotated[Number        , FieldRole.INPUT   ] = 0
	b    : Annotated[Number        , FieldRole.INPUT   ] = 0
	out  : Annotated[Number        , FieldRole.OUTPUT  ] = 0


@node_info(title="Clamp", description="Limits value to [min, max]", icon="⊏", section="Math")
class ClampNode(ValueType):
	type  : Annotated[Literal["clamp"], FieldRole.CONSTANT] = "clamp"
	value : Annotated[Number          , FieldRole.INPUT   ] = 0
	min   : Annotated[Number          , FieldRole.INPUT   ] = 0
	max   : Annotated[Number          , FieldRole.INPUT   ] = 1
	out   : Annotated[Number          , FieldRole.OUTPUT  ] = 0


@node_info(title="Random", description="Uniform random number in [min, max)", icon="🎲", section="Math")
class RandomNode(ValueType):
	type : Annotated[Literal["random"], FieldRole.CONSTANT] = "random"
	min  : Annotated[Number           , FieldRole.INPUT   ] = 0
	max  : Annotated[Number           , FieldRole.INPUT   ] = 1
	out  : Annotated[float            , FieldRole.OUTPUT  ] = 0.0


@node_info(title="Constant", description="Holds a literal value", icon="π", section="Math")
class ConstantNode(ValueType):
	type  : Annotated[Literal["constant"], FieldRole.CONSTANT] = "constant"
	value : Annotated[Any                , FieldRole.INPUT   ] = Field(default=None, description="Literal value (number, string, bool or array)")
	out   : Annotated[Any                , FieldRole.OUTPUT  ] = None


# =============================================================================
# COMPARISON AND LOGIC NODES
# =============================================================================

@node_info(visible=False)
class CompareType(ValueType):
	type : Annotated[Literal["compare_type"], FieldRole.CONSTANT] = "compare_type"
	a    : Annotated[Any                    , FieldRole.INPUT   ] = 0
	b    : Annotated[Any                    , FieldRole.INPUT   ] = 0
	out  : Annotated[bool                   , FieldRole.OUTPUT  ] = False


@node_info(title="Equals", description="a == b", icon="=", section="Logic")
class EqualsNode(CompareType):
	type : Annotated[Literal["equals"], FieldRole.CONSTANT] = "equals"


@node_info(title="Not Equals", description="a != b", icon="≠", section="Logic")
class NotEqualsNode(CompareType):
	type : Annotated[Literal["not_equals"], FieldRole.CONSTANT] = "not_equals"


@node_info(title="Greater Than", description="a > b", icon=">", section="Logic")
class GreaterThanNode(CompareType):
	type : Annotated[Literal["greater_than"], FieldRole.CONSTANT] = "greater_than"


@node_info(title="Greater Or Equal", description="a >= b", icon="≥", section="Logic")
class GreaterThanOrEqualNode(CompareType):
	type : Annotated[Literal["greater_than_or_equal"], FieldRole.CONSTANT] = "greater_than_or_equal"


@node_info(title="Less Than", description="a < b", icon="<", section="Logic")
class LessThanNode(CompareType):
	type : Annotated[Literal["less_than"], FieldRole.CONSTANT] = "less_than"


@node_info(title="Less Or Equal", description="a <= b", icon="≤", section="Logic")
class LessThanOrEqualNode(CompareType):
	type : Annotated[Literal["less_than_or_equal"], FieldRole.CONSTANT] = "less_than_or_equal"


@node_info(visible=False)
class LogicType(ValueType):
	type : Annotated[Literal["logic_type"], FieldRole.CONSTANT] = "logic_type"
	a    : Annotated[bool                 , FieldRole.INPUT   ] = False
	b    : Annotated[bool                 , FieldRole.INPUT   ] = False
	out  : Annotated[bool                 , FieldRole.OUTPUT  ] = False


@node_info(title="And", icon="∧", section="Logic")
class AndNode(LogicType):
	type : Annotated[Literal["and"], FieldRole.CONSTANT] = "and"


@node_info(title="Or", icon="∨", section="Logic")
class OrNode(LogicType):
	type : Annotated[Literal["or"], FieldRole.CONSTANT] = "or"


@node_info(title="Xor", icon="⊕", section="Logic")
class XorNode(LogicType):
	type : Annotated[Literal["xor"], FieldRole.CONSTANT] = "xor"


@node_info(title="Not", icon="¬", section="Logic")
class NotNode(ValueType):
	type  : Annotated[Literal["not"], FieldRole.CONSTANT] = "not"
	value : Annotated[bool          , FieldRole.INPUT   ] = False
	out   : Annotated[bool          , FieldRole.OUTPUT  ] = True


# =============================================================================
# STRING AND CONVERSION NODES
# =============================================================================

DEFAULT_SPLIT_DELIMITER   : str = ","
DEFAULT_FORMAT_TEMPLATE   : str = "Hello {}!"
DEFAULT_JOIN_INPUTS       : int = 2
DEFAULT_EXTRACT_LENGTH    : int = 10


@node_info(title="Concat", description="a followed by b", icon="⧺", section="Strings")
class ConcatNode(ValueType):
	type : Annotated[Literal["concat"], FieldRole.CONSTANT] = "concat"
	a    : Annotated[str              , FieldRole.INPUT   ] = ""
	b    : Annotated[str              , FieldRole.INPUT   ] = ""
	out  : Annotated[str              , FieldRole.OUTPUT  ] = ""


@node_info(title="Split", description="Piece number 'index' of the string split on 'delimiter'", icon="✂", section="Strings")
class SplitNode(ValueType):
	type      : Annotated[Literal["split"], FieldRole.CONSTANT] = "split"
	string    : Annotated[str             , FieldRole.INPUT   ] = ""
	delimiter : Annotated[str             , FieldRole.INPUT   ] = DEFAULT_SPLIT_DELIMITER
	index     : Annotated[int             , FieldRole.INPUT   ] = 0
	out       : Annotated[str             , FieldRole.OUTPUT  ] = ""


@node_info(title="Length", description="Number of characters", icon="#", section="Strings")
class LengthNode(ValueType):
	type   : Annotated[Literal["length"], FieldRole.CONSTANT] = "length"
	string : Annotated[str              , FieldRole.INPUT   ] = ""
	out    : Annotated[int              , FieldRole.OUTPUT  ] = 0


@node_info(title="Contains", description="Whether the string contains the substring", icon="∋", section="Strings")
class ContainsNode(ValueType):
	type      : Annotated[Literal["contains"], FieldRole.CONSTANT] = "contains"
	string    : Annotated[str                , FieldRole.INPUT   ] = ""
	substring : Annotated[str                , FieldRole.INPUT   ] = ""
	out       : Annotated[bool               , FieldRole.OUTPUT  ] = False


@node_info(title="Replace", description="Replaces every 'old' with 'new'", icon="⇄", section="Strings")
class ReplaceNode(ValueType):
	type   : Annotated[Literal["replace"], FieldRole.CONSTANT] = "replace"
	string : Annotated[str               , FieldRole.INPUT   ] = ""
	old    : Annotated[str               , FieldRole.INPUT   ] = ""
	new    : Annotated[str               , FieldRole.INPUT   ] = ""
	out    : Annotated[str               , FieldRole.OUTPUT  ] = ""


@node_info(title="Format", description="Replaces the first '{}' of the template with arg0", icon="✎", section="Strings")
class FormatNode(ValueType):
	type     : Annotated[Literal["format"], FieldRole.CONSTANT] = "format"
	template : Annotated[str              , FieldRole.INPUT   ] = DEFAULT_FORMAT_TEMPLATE
	arg0     : Annotated[Any              , FieldRole.INPUT   ] = ""
	out      : Annotated[str              , FieldRole.OUTPUT  ] = ""


@node_info(title="String Join", description="Concatenates in0..inN, skipping absent inputs", icon="⨁", section="Strings")
class StringJoinNode(ValueType):
	type      : Annotated[Literal["string_join"], FieldRole.CONSTANT  ] = "string_join"
	count     : Annotated[int                   , FieldRole.ANNOTATION] = Field(default=DEFAULT_JOIN_INPUTS, ge=1, description="Number of numbered inputs")
	separator : Annotated[str                   , FieldRole.INPUT     ] = ""
	out       : Annotated[str                   , FieldRole.OUTPUT    ] = ""

	def dynamic_ports(self) -> Tuple[List[Port], List[Port]]:
		inputs = [Port(name=f"in{i}", data_type=DataType.STRING, is_input=True) for i in range(self.count)]
		return inputs, []


@node_info(title="String Between", description="Text between 'before' and 'after'", icon="⟦⟧", section="Strings")
class StringBetweenNode(ValueType):
	type   : Annotated[Literal["string_between"], FieldRole.CONSTANT] = "string_between"
	source : Annotated[str                      , FieldRole.INPUT   ] = ""
	before : Annotated[str                      , FieldRole.INPUT   ] = ""
	after  : Annotated[str                      , FieldRole.INPUT   ] = ""
	out    : Annotated[str                      , FieldRole.OUTPUT  ] = ""


@node_info(title="String Trim", description="Strips whitespace (mode 0 both ends, 1 start, 2 end)", icon="⌫", section="Strings")
class StringTrimNode(ValueType):
	type   : Annotated[Literal["string_trim"], FieldRole.CONSTANT] = "string_trim"
	string : Annotated[str                   , FieldRole.INPUT   ] = ""
	mode   : Annotated[int                   , FieldRole.INPUT   ] = 0
	out    : Annotated[str                   , FieldRole.OUTPUT  ] = ""


@node_info(title="Extract After", description="'length' characters following the keyword", icon="↦", section="Strings")
class ExtractAfterNode(ValueType):
	type    : Annotated[Literal["extract_after"], FieldRole.CONSTANT] = "extract_after"
	source  : Annotated[str                     , FieldRole.INPUT   ] = ""
	keyword : Annotated[str                     , FieldRole.INPUT   ] = ""
	length  : Annotated[int                     , FieldRole.INPUT   ] = DEFAULT_EXTRACT_LENGTH
	result  : Annotated[str                     , FieldRole.OUTPUT  ] = ""
	found   : Annotated[bool                    , FieldRole.OUTPUT  ] = False


@node_info(title="Extract Until", description="Text after the keyword up to the delimiter", icon="⇥", section="Strings")
class ExtractUntilNode(ValueType):
	type      : Annotated[Literal["extract_until"], FieldRole.CONSTANT] = "extract_until"
	source    : Annotated[str                     , FieldRole.INPUT   ] = ""
	keyword   : Annotated[str                     , FieldRole.INPUT   ] = ""
	delimiter : Annotated[str                     , FieldRole.INPUT   ] = DEFAULT_SPLIT_DELIMITER
	result    : Annotated[str                     , FieldRole.OUTPUT  ] = ""
	found     : Annotated[bool                    , FieldRole.OUTPUT  ] = False


@node_info(title="To Integer", icon="ℤ", section="Conversion")
class ToIntegerNode(ValueType):
	type  : Annotated[Literal["to_integer"], FieldRole.CONSTANT] = "to_integer"
	value : Annotated[Any                  , FieldRole.INPUT   ] = 0
	out   : Annotated[int                  , FieldRole.OUTPUT  ] = 0


@node_info(title="To Float", icon="ℝ", section="Conversion")
class ToFloatNode(ValueType):
	type  : Annotated[Literal["to_float"], FieldRole.CONSTANT] = "to_float"
	value : Annotated[Any                , FieldRole.INPUT   ] = 0.0
	out   : Annotated[float              , FieldRole.OUTPUT  ] = 0.0


@node_info(title="To String", icon="𝑆", section="Conversion")
class ToStringNode(ValueType):
	type  : Annotated[Literal["to_string"], FieldRole.CONSTANT] = "to_string"
	value : Annotated[Any                 , FieldRole.INPUT   ] = ""
	out   : Annotated[str                 , FieldRole.OUTPUT  ] = ""


@node_info(title="Get Timestamp", description="Unix time in milliseconds or seconds", icon="🕒", section="Conversion")
class GetTimestampNode(ValueType):
	type         : Annotated[Literal["get_timestamp"], FieldRole.CONSTANT] = "get_timestamp"
	milliseconds : Annotated[bool                    , FieldRole.INPUT   ] = True
	timestamp    : Annotated[int                     , FieldRole.OUTPUT  ] = 0


# =============================================================================
# ARRAY AND JSON NODES
# =============================================================================

DEFAULT_ARRAY_VARIABLE : str = "myArray"


@node_info(title="Array Create", description="A new empty array", icon="[]", section="Arrays")
class ArrayCreateNode(ValueType):
	type  : Annotated[Literal["array_create"], FieldRole.CONSTANT] = "array_create"
	array : Annotated[List[Any]              , FieldRole.OUTPUT  ] = Field(default_factory=list)


@node_info(title="Array Get", description="Element at index; works on strings too", icon="[i]", section="Arrays")
class ArrayGetNode(ValueType):
	type  : Annotated[Literal["array_get"], FieldRole.CONSTANT] = "array_get"
	array : Annotated[Any                 , FieldRole.INPUT   ] = Field(default_factory=list)
	index : Annotated[int                 , FieldRole.INPUT   ] = 0
	value : Annotated[Any                 , FieldRole.OUTPUT  ] = None


@node_info(title="Array Length", icon="|[]|", section="Arrays")
class ArrayLengthNode(ValueType):
	type   : Annotated[Literal["array_length"], FieldRole.CONSTANT] = "array_length"
	array  : Annotated[Any                    , FieldRole.INPUT   ] = Field(default_factory=list)
	length : Annotated[int                    , FieldRole.OUTPUT  ] = 0


@node_info(title="Array Push", description="Appends to an array variable, creating it when missing", icon="⤓", section="Arrays")
class ArrayPushFlow(FlowType):
	type     : Annotated[Literal["array_push"], FieldRole.CONSTANT] = "array_push"
	variable : Annotated[str                  , FieldRole.INPUT   ] = DEFAULT_ARRAY_VARIABLE
	value    : Annotated[Any                  , FieldRole.INPUT   ] = None
	length   : Annotated[int                  , FieldRole.OUTPUT  ] = 0


@node_info(title="Array Pop", description="Removes the last element of an array variable", icon="⤒", section="Arrays")
class ArrayPopFlow(FlowType):
	type     : Annotated[Literal["array_pop"], FieldRole.CONSTANT] = "array_pop"
	variable : Annotated[str                 , FieldRole.INPUT   ] = DEFAULT_ARRAY_VARIABLE
	value    : Annotated[Any                 , FieldRole.OUTPUT  ] = None


@node_info(title="Array Set", description="Stores a value at index, padding with nulls", icon="⤏", section="Arrays")
class ArraySetFlow(FlowType):
	type     : Annotated[Literal["array_set"], FieldRole.CONSTANT] = "array_set"
	variable : Annotated[str                 , FieldRole.INPUT   ] = DEFAULT_ARRAY_VARIABLE
	index    : Annotated[int                 , FieldRole.INPUT   ] = 0
	value    : Annotated[Any                 , FieldRole.INPUT   ] = None


@node_info(title="JSON Parse", description="Decodes JSON text; objects stay JSON strings", icon="{}", section="Arrays")
class JsonParseNode(ValueType):
	type    : Annotated[Literal["json_parse"], FieldRole.CONSTANT] = "json_parse"
	text    : Annotated[str                  , FieldRole.INPUT   ] = ""
	value   : Annotated[Any                  , FieldRole.OUTPUT  ] = None
	success : Annotated[bool                 , FieldRole.OUTPUT  ] = False


@node_info(title="JSON Stringify", description="Encodes a value as JSON text", icon="\"{}\"", section="Arrays")
class JsonStringifyNode(ValueType):
	type  : Annotated[Literal["json_stringify"], FieldRole.CONSTANT] = "json_stringify"
	value : Annotated[Any                      , FieldRole.INPUT   ] = None
	text  : Annotated[str                      , FieldRole.OUTPUT  ] = ""


# =============================================================================
# I/O AND SYSTEM NODES
# =============================================================================

DEFAULT_READ_INPUT_PROMPT : str = "Enter a value:"
DEFAULT_HTTP_METHOD       : str = "GET"
DEFAULT_WINDOW_WIDTH      : int = 800
DEFAULT_WINDOW_HEIGHT     : int = 600


@node_info(title="Print", description="Writes a line to the execution log", icon="🖨", section="I/O")
class PrintFlow(FlowType):
	type : Annotated[Literal["print"], FieldRole.CONSTANT] = "print"
	text : Annotated[Any             , FieldRole.INPUT   ] = ""


@node_info(title="Read Input", description="Asks the controller for a value and waits for the answer", icon="⌨", section="I/O")
class ReadInputFlow(FlowType):
	type   : Annotated[Literal["read_input"], FieldRole.CONSTANT] = "read_input"
	prompt : Annotated[str                  , FieldRole.INPUT   ] = DEFAULT_READ_INPUT_PROMPT
	value  : Annotated[str                  , FieldRole.OUTPUT  ] = ""


@node_info(title="File Read", icon="📄", section="I/O")
class FileReadFlow(FlowType):
	type    : Annotated[Literal["file_read"], FieldRole.CONSTANT] = "file_read"
	path    : Annotated[str                 , FieldRole.INPUT   ] = ""
	content : Annotated[str                 , FieldRole.OUTPUT  ] = ""
	success : Annotated[bool                , FieldRole.OUTPUT  ] = False


@node_info(title="File Write", icon="💾", section="I/O")
class FileWriteFlow(FlowType):
	type    : Annotated[Literal["file_write"], FieldRole.CONSTANT] = "file_write"
	path    : Annotated[str                  , FieldRole.INPUT   ] = ""
	content : Annotated[str                  , FieldRole.INPUT   ] = ""
	append  : Annotated[bool                 , FieldRole.INPUT   ] = False
	success : Annotated[bool                 , FieldRole.OUTPUT  ] = False


@node_info(title="HTTP Request", icon="🌐", section="I/O")
class HttpRequestFlow(FlowType):
	type     : Annotated[Literal["http_request"], FieldRole.CONSTANT] = "http_request"
	url      : Annotated[str                    , FieldRole.INPUT   ] = ""
	method   : Annotated[str                    , FieldRole.INPUT   ] = DEFAULT_HTTP_METHOD
	body     : Annotated[str                    , FieldRole.INPUT   ] = ""
	response : Annotated[str                    , FieldRole.OUTPUT  ] = ""
	status   : Annotated[int                    , FieldRole.OUTPUT  ] = 0
	success  : Annotated[bool                   , FieldRole.OUTPUT  ] = False


@node_info(title="Run Command", icon="🖥", section="System")
class RunCommandFlow(FlowType):
	type      : Annotated[Literal["run_command"], FieldRole.CONSTANT] = "run_command"
	command   : Annotated[str                   , FieldRole.INPUT   ] = ""
	args      : Annotated[str                   , FieldRole.INPUT   ] = ""
	output    : Annotated[str                   , FieldRole.OUTPUT  ] = ""
	exit_code : Annotated[int                   , FieldRole.OUTPUT  ] = 0
	success   : Annotated[bool                  , FieldRole.OUTPUT  ] = False


@node_info(title="Launch App", icon="🚀", section="System")
class LaunchAppFlow(FlowType):
	type    : Annotated[Literal["launch_app"], FieldRole.CONSTANT] = "launch_app"
	path    : Annotated[str                  , FieldRole.INPUT   ] = ""
	args    : Annotated[str                  , FieldRole.INPUT   ] = ""
	success : Annotated[bool                 , FieldRole.OUTPUT  ] = False


@node_info(title="Close App", icon="✖", section="System")
class CloseAppFlow(FlowType):
	type    : Annotated[Literal["close_app"], FieldRole.CONSTANT] = "close_app"
	name    : Annotated[str                 , FieldRole.INPUT   ] = ""
	success : Annotated[bool                , FieldRole.OUTPUT  ] = False


@node_info(title="Focus Window", icon="🗔", section="System")
class FocusWindowFlow(FlowType):
	type    : Annotated[Literal["focus_window"], FieldRole.CONSTANT] = "focus_window"
	title   : Annotated[str                    , FieldRole.INPUT   ] = ""
	success : Annotated[bool                   , FieldRole.OUTPUT  ] = False


@node_info(title="Get Window Position", description="Geometry of the first window whose title matches", icon="⌖", section="System")
class GetWindowPositionNode(ValueType):
	type   : Annotated[Literal["get_window_position"], FieldRole.CONSTANT] = "get_window_position"
	title  : Annotated[str                           , FieldRole.INPUT   ] = ""
	x      : Annotated[int                           , FieldRole.OUTPUT  ] = 0
	y      : Annotated[int                           , FieldRole.OUTPUT  ] = 0
	width  : Annotated[int                           , FieldRole.OUTPUT  ] = 0
	height : Annotated[int                           , FieldRole.OUTPUT  ] = 0
	found  : Annotated[bool                          , FieldRole.OUTPUT  ] = False


@node_info(title="Set Window Position", icon="⤢", section="System")
class SetWindowPositionFlow(FlowType):
	type    : Annotated[Literal["set_window_position"], FieldRole.CONSTANT] = "set_window_position"
	title   : Annotated[str                           , FieldRole.INPUT   ] = ""
	x       : Annotated[int                           , FieldRole.INPUT   ] = 0
	y       : Annotated[int                           , FieldRole.INPUT   ] = 0
	width   : Annotated[int                           , FieldRole.INPUT   ] = DEFAULT_WINDOW_WIDTH
	height  : Annotated[int                           , FieldRole.INPUT   ] = DEFAULT_WINDOW_HEIGHT
	success : Annotated[bool                          , FieldRole.OUTPUT  ] = False


# =============================================================================
# INPUT AUTOMATION NODES
# =============================================================================

DEFAULT_MOUSE_BUTTON      : str = "left"
DEFAULT_SCROLL_Y          : int = -3
DEFAULT_PRESS_KEY         : str = "Return"
DEFAULT_HOLD_KEY          : str = "Shift"
DEFAULT_HOTKEY_KEY        : str = "c"
DEFAULT_TYPE_DELAY_MS     : int = 50


@node_info(visible=False)
class PointerType(FlowType):
	type    : Annotated[Literal["pointer_type"], FieldRole.CONSTANT] = "pointer_type"
	x       : Annotated[int                    , FieldRole.INPUT   ] = 0
	y       : Annotated[int                    , FieldRole.INPUT   ] = 0
	success : Annotated[bool                   , FieldRole.OUTPUT  ] = False


@node_info(title="Click", icon="🖱", section="Input")
class ClickFlow(PointerType):
	type : Annotated[Literal["click"], FieldRole.CONSTANT] = "click"


@node_info(title="Double Click", icon="🖱", section="Input")
class DoubleClickFlow(PointerType):
	type : Annotated[Literal["double_click"], FieldRole.CONSTANT] = "double_click"


@node_info(title="Right Click", icon="🖱", section="Input")
class RightClickFlow(PointerType):
	type : Annotated[Literal["right_click"], FieldRole.CONSTANT] = "right_click"


@node_info(title="Mouse Move", icon="↗", section="Input")
class MouseMoveFlow(PointerType):
	type : Annotated[Literal["mouse_move"], FieldRole.CONSTANT] = "mouse_move"


@node_info(title="Mouse Down", icon="⬇", section="Input")
class MouseDownFlow(FlowType):
	type    : Annotated[Literal["mouse_down"], FieldRole.CONSTANT] = "mouse_down"
	button  : Annotated[str                  , FieldRole.INPUT   ] = DEFAULT_MOUSE_BUTTON
	success : Annotated[bool                 , FieldRole.OUTPUT  ] = False


@node_info(title="Mouse Up", icon="⬆", section="Input")
class MouseUpFlow(FlowType):
	type    : Annotated[Literal["mouse_up"], FieldRole.CONSTANT] = "mouse_up"
	button  : Annotated[str                , FieldRole.INPUT   ] = DEFAULT_MOUSE_BUTTON
	success : Annotated[bool               , FieldRole.OUTPUT  ] = False


@node_info(title="Scroll", description="Scrolls x clicks horizontally and y clicks vertically", icon="↕", section="Input")
class ScrollFlow(FlowType):
	type    : Annotated[Literal["scroll"], FieldRole.CONSTANT] = "scroll"
	x       : Annotated[int              , FieldRole.INPUT   ] = 0
	y       : Annotated[int              , FieldRole.INPUT   ] = DEFAULT_SCROLL_Y
	success : Annotated[bool             , FieldRole.OUTPUT  ] = False


@node_info(title="Key Press", icon="⏎", section="Input")
class KeyPressFlow(FlowType):
	type    : Annotated[Literal["key_press"], FieldRole.CONSTANT] = "key_press"
	key     : Annotated[str                 , FieldRole.INPUT   ] = DEFAULT_PRESS_KEY
	success : Annotated[bool                , FieldRole.OUTPUT  ] = False


@node_info(title="Key Down", icon="⇩", section="Input")
class KeyDownFlow(FlowType):
	type    : Annotated[Literal["key_down"], FieldRole.CONSTANT] = "key_down"
	key     : Annotated[str                , FieldRole.INPUT   ] = DEFAULT_HOLD_KEY
	success : Annotated[bool               , FieldRole.OUTPUT  ] = False


@node_info(title="Key Up", icon="⇧", section="Input")
class KeyUpFlow(FlowType):
	type    : Annotated[Literal["key_up"], FieldRole.CONSTANT] = "key_up"
	key     : Annotated[str              , FieldRole.INPUT   ] = DEFAULT_HOLD_KEY
	success : Annotated[bool             , FieldRole.OUTPUT  ] = False


@node_info(title="Type Text", icon="⌨", section="Input")
class TypeTextFlow(FlowType):
	type    : Annotated[Literal["type_text"], FieldRole.CONSTANT] = "type_text"
	text    : Annotated[str                 , FieldRole.INPUT   ] = ""
	success : Annotated[bool                , FieldRole.OUTPUT  ] = False


@node_info(title="Type String", description="Types text one character at a time", icon="⌨", section="Input")
class TypeStringFlow(FlowType):
	type     : Annotated[Literal["type_string"], FieldRole.CONSTANT] = "type_string"
	text     : Annotated[str                   , FieldRole.INPUT   ] = ""
	delay_ms : Annotated[int                   , FieldRole.INPUT   ] = DEFAULT_TYPE_DELAY_MS
	success  : Annotated[bool                  , FieldRole.OUTPUT  ] = False


@node_info(title="Hot Key", description="Presses a key while holding the selected modifiers", icon="⌘", section="Input")
class HotKeyFlow(FlowType):
	type    : Annotated[Literal["hot_key"], FieldRole.CONSTANT] = "hot_key"
	key     : Annotated[str               , FieldRole.INPUT   ] = DEFAULT_HOTKEY_KEY
	ctrl    : Annotated[bool              , FieldRole.INPUT   ] = True
	shift   : Annotated[bool              , FieldRole.INPUT   ] = False
	alt     : Annotated[bool              , FieldRole.INPUT   ] = False
	command : Annotated[bool              , FieldRole.INPUT   ] = False
	success : Annotated[bool              , FieldRole.OUTPUT  ] = False


# =============================================================================
# SCREEN AND IMAGE NODES
# =============================================================================

DEFAULT_COLOR_TOLERANCE   : int = 10
DEFAULT_REGION_WIDTH      : int = 1920
DEFAULT_REGION_HEIGHT     : int = 1080
DEFAULT_CAPTURE_WIDTH     : int = 200
DEFAULT_CAPTURE_HEIGHT    : int = 100
DEFAULT_WAIT_FOR_TIMEOUT  : int = 5000
DEFAULT_COLOR_POLL_MS     : int = 100
DEFAULT_IMAGE_POLL_MS     : int = 200
DEFAULT_TEMPLATE_PATH     : str = "template.png"
DEFAULT_SIMILARITY_MATCH  : float = 0.95


@node_info(visible=False)
class RegionType(FlowType):
	type          : Annotated[Literal["region_type"], FieldRole.CONSTANT] = "region_type"
	region_x      : Annotated[int                   , FieldRole.INPUT   ] = 0
	region_y      : Annotated[int                   , FieldRole.INPUT   ] = 0
	region_width  : Annotated[int                   , FieldRole.INPUT   ] = DEFAULT_REGION_WIDTH
	region_height : Annotated[int                   , FieldRole.INPUT   ] = DEFAULT_REGION_HEIGHT


@node_info(title="Screen Capture", description="Captures a display into a PNG file", icon="📷", section="Screen")
class ScreenCaptureFlow(FlowType):
	type       : Annotated[Literal["screen_capture"], FieldRole.CONSTANT] = "screen_capture"
	display    : Annotated[int                      , FieldRole.INPUT   ] = 0
	image_path : Annotated[str                      , FieldRole.OUTPUT  ] = ""
	success    : Annotated[bool                     , FieldRole.OUTPUT  ] = False


@node_info(title="Save Screenshot", description="Copies a captured image to a file", icon="💾", section="Screen")
class SaveScreenshotFlow(FlowType):
	type       : Annotated[Literal["save_screenshot"], FieldRole.CONSTANT] = "save_screenshot"
	image_path : Annotated[str                       , FieldRole.INPUT   ] = ""
	filename   : Annotated[str                       , FieldRole.INPUT   ] = "screenshot.png"
	saved_path : Annotated[str                       , FieldRole.OUTPUT  ] = ""
	success    : Annotated[bool                      , FieldRole.OUTPUT  ] = False


@node_info(title="Region Capture", description="Captures a screen rectangle into a PNG file", icon="⬚", section="Screen")
class RegionCaptureFlow(FlowType):
	type       : Annotated[Literal["region_capture"], FieldRole.CONSTANT] = "region_capture"
	x          : Annotated[int                      , FieldRole.INPUT   ] = 0
	y          : Annotated[int                      , FieldRole.INPUT   ] = 0
	width      : Annotated[int                      , FieldRole.INPUT   ] = DEFAULT_CAPTURE_WIDTH
	height     : Annotated[int                      , FieldRole.INPUT   ] = DEFAULT_CAPTURE_HEIGHT
	filename   : Annotated[str                      , FieldRole.INPUT   ] = "region.png"
	image_path : Annotated[str                      , FieldRole.OUTPUT  ] = ""
	success    : Annotated[bool                     , FieldRole.OUTPUT  ] = False


@node_info(title="Get Pixel Color", icon="🎨", section="Screen")
class GetPixelColorFlow(FlowType):
	type    : Annotated[Literal["get_pixel_color"], FieldRole.CONSTANT] = "get_pixel_color"
	x       : Annotated[int                       , FieldRole.INPUT   ] = 0
	y       : Annotated[int                       , FieldRole.INPUT   ] = 0
	r       : Annotated[int                       , FieldRole.OUTPUT  ] = 0
	g       : Annotated[int                       , FieldRole.OUTPUT  ] = 0
	b       : Annotated[int                       , FieldRole.OUTPUT  ] = 0
	success : Annotated[bool                      , FieldRole.OUTPUT  ] = False


@node_info(title="Find Color", description="First pixel in the region within tolerance of the color", icon="🔍", section="Screen")
class FindColorFlow(RegionType):
	type      : Annotated[Literal["find_color"], FieldRole.CONSTANT] = "find_color"
	r         : Annotated[int                  , FieldRole.INPUT   ] = 255
	g         : Annotated[int                  , FieldRole.INPUT   ] = 0
	b         : Annotated[int                  , FieldRole.INPUT   ] = 0
	tolerance : Annotated[int                  , FieldRole.INPUT   ] = DEFAULT_COLOR_TOLERANCE
	x         : Annotated[int                  , FieldRole.OUTPUT  ] = 0
	y         : Annotated[int                  , FieldRole.OUTPUT  ] = 0
	found     : Annotated[bool                 , FieldRole.OUTPUT  ] = False


@node_info(title="Wait For Color", description="Polls one pixel until it matches the color", icon="⏳", section="Screen")
class WaitForColorFlow(FlowType):
	type       : Annotated[Literal["wait_for_color"], FieldRole.CONSTANT   ] = "wait_for_color"
	r          : Annotated[int                      , FieldRole.INPUT      ] = 255
	g          : Annotated[int                      , FieldRole.INPUT      ] = 0
	b          : Annotated[int                      , FieldRole.INPUT      ] = 0
	x          : Annotated[int                      , FieldRole.INPUT      ] = 0
	y          : Annotated[int                      , FieldRole.INPUT      ] = 0
	tolerance  : Annotated[int                      , FieldRole.INPUT      ] = DEFAULT_COLOR_TOLERANCE
	timeout_ms : Annotated[int                      , FieldRole.INPUT      ] = DEFAULT_WAIT_FOR_TIMEOUT
	found      : Annotated[bool                     , FieldRole.OUTPUT     ] = False
	timed_out  : Annotated[Optional[Any]            , FieldRole.FLOW_OUTPUT] = None


@node_info(title="Find Image", description="Locates a template image on screen; x/y is the centre of the match", icon="🖼", section="Screen")
class FindImageFlow(RegionType):
	type       : Annotated[Literal["find_image"], FieldRole.CONSTANT] = "find_image"
	image_path : Annotated[str                  , FieldRole.INPUT   ] = DEFAULT_TEMPLATE_PATH
	tolerance  : Annotated[int                  , FieldRole.INPUT   ] = DEFAULT_COLOR_TOLERANCE
	x          : Annotated[int                  , FieldRole.OUTPUT  ] = 0
	y          : Annotated[int                  , FieldRole.OUTPUT  ] = 0
	score      : Annotated[float                , FieldRole.OUTPUT  ] = 0.0
	found      : Annotated[bool                 , FieldRole.OUTPUT  ] = False


@node_info(title="Wait For Image", description="Polls the screen until the template appears", icon="⏳", section="Screen")
class WaitForImageFlow(RegionType):
	type       : Annotated[Literal["wait_for_image"], FieldRole.CONSTANT   ] = "wait_for_image"
	image_path : Annotated[str                      , FieldRole.INPUT      ] = DEFAULT_TEMPLATE_PATH
	tolerance  : Annotated[int                      , FieldRole.INPUT      ] = DEFAULT_COLOR_TOLERANCE
	timeout_ms : Annotated[int                      , FieldRole.INPUT      ] = DEFAULT_WAIT_FOR_TIMEOUT
	x          : Annotated[int                      , FieldRole.OUTPUT     ] = 0
	y          : Annotated[int                      , FieldRole.OUTPUT     ] = 0
	found      : Annotated[bool                     , FieldRole.OUTPUT     ] = False
	timed_out  : Annotated[Optional[Any]            , FieldRole.FLOW_OUTPUT] = None


@node_info(title="Image Similarity", description="Share of matching pixels between two images", icon="≈", section="Screen")
class ImageSimilarityNode(ValueType):
	type        : Annotated[Literal["image_similarity"], FieldRole.CONSTANT] = "image_similarity"
	image_path1 : Annotated[str                        , FieldRole.INPUT   ] = ""
	image_path2 : Annotated[str                        , FieldRole.INPUT   ] = ""
	tolerance   : Annotated[int                        , FieldRole.INPUT   ] = DEFAULT_COLOR_TOLERANCE
	similarity  : Annotated[float                      , FieldRole.OUTPUT  ] = 0.0
	match       : Annotated[bool                       , FieldRole.OUTPUT  ] = False


GraphNodeUnion = Union[
	# Control nodes
	EntryFlow,
	NotesNode,
	BranchFlow,
	SequenceFlow,
	GateFlow,
	ForLoopFlow,
	WhileLoopFlow,
	ForLoopAsyncFlow,
	WaitForConditionFlow,
	DelayFlow,

	# Variable nodes
	GetVariableNode,
	SetVariableFlow,

	# Math nodes
	AddNode,
	SubtractNode,
	MultiplyNode,
	DivideNode,
	ModuloNode,
	PowerNode,
	AbsNode,
	MinNode,
	MaxNode,
	ClampNode,
	RandomNode,
	ConstantNode,

	# Comparison and logic nodes
	EqualsNode,
	NotEqualsNode,
	GreaterThanNode,
	GreaterThanOrEqualNode,
	LessThanNode,
	LessThanOrEqualNode,
	AndNode,
	OrNode,
	XorNode,
	NotNode,

	# String and conversion nodes
	ConcatNode,
	SplitNode,
	LengthNode,
	ContainsNode,
	ReplaceNode,
	FormatNode,
	StringJoinNode,
	StringBetweenNode,
	StringTrimNode,
	ExtractAfterNode,
	ExtractUntilNode,
	ToIntegerNode,
	ToFloatNode,
	ToStringNode,
	GetTimestampNode,

	# Array and JSON nodes
	ArrayCreateNode,
	ArrayGetNode,
	ArrayLengthNode,
	ArrayPushFlow,
	ArrayPopFlow,
	ArraySetFlow,
	JsonParseNode,
	JsonStringifyNode,

	# I/O and system nodes
	PrintFlow,
	ReadInputFlow,
	FileReadFlow,
	FileWriteFlow,
	HttpRequestFlow,
	RunCommandFlow,
	LaunchAppFlow,
	CloseAppFlow,
	FocusWindowFlow,
	GetWindowPositionNode,
	SetWindowPositionFlow,

	# Input automation nodes
	ClickFlow,
	DoubleClickFlow,
	RightClickFlow,
	MouseMoveFlow,
	MouseDownFlow,
	MouseUpFlow,
	ScrollFlow,
	KeyPressFlow,
	KeyDownFlow,
	KeyUpFlow,
	TypeTextFlow,
	TypeStringFlow,
	HotKeyFlow,

	# Screen and image nodes
	ScreenCaptureFlow,
	SaveScreenshotFlow,
	RegionCaptureFlow,
	GetPixelColorFlow,
	FindColorFlow,
	WaitForColorFlow,
	FindImageFlow,
	WaitForImageFlow,
	ImageSimilarityNode,
]


# =============================================================================
# PORTS
# =============================================================================

_PORT_ROLES = {
	FieldRole.INPUT       : (True , False),
	FieldRole.OUTPUT      : (False, False),
	FieldRole.FLOW_INPUT  : (True , True ),
	FieldRole.FLOW_OUTPUT : (False, True ),
}


def _port_data_type(annotation: Any) -> Optional[DataType]:
	"""Map a field annotation onto a port kind; None for Any"""
	if annotation is Any or annotation is None:
		return None
	origin = get_origin(annotation)
	if origin is Union:
		args = [a for a in get_args(annotation) if a is not type(None)]
		if set(args) == {int, float}:
			return DataType.FLOAT
		if len(args) == 1:
			return _port_data_type(args[0])
		return None
	if origin in (list, List) or annotation is list:
		return DataType.ARRAY
	if annotation is bool:
		return DataType.BOOL
	if annotation is int:
		return DataType.INTEGER
	if annotation is float:
		return DataType.FLOAT
	if annotation is str:
		return DataType.STRING
	return None


def _field_role(info: Any) -> Optional[FieldRole]:
	for meta in info.metadata:
		if isinstance(meta, FieldRole):
			return meta
	return None


def _names_variable(node: BaseType) -> bool:
	"""Whether the node is bound to a declared variable through its 'variable' setting"""
	info = type(node).model_fields.get("variable")
	return info is not None and _field_role(info) == FieldRole.ANNOTATION


def node_ports(node: BaseType, variables: Optional[Dict[str, "Variable"]] = None) -> NodePorts:
	"""
	Ports of a node, derived from its field roles.

	Data ports take their kind from the field annotation; ports typed Any on
	variable nodes take the kind declared by the referenced variable.
	"""
	ports = NodePorts()
	for name, info in type(node).model_fields.items():
		role = _field_role(info)
		if role not in _PORT_ROLES:
			continue
		is_input, is_flow = _PORT_ROLES[role]
		if is_flow:
			data_type = DataType.EXECUTION_FLOW
		else:
			data_type = _port_data_type(info.annotation)
			if data_type is None and variables and _names_variable(node) and node.variable in variables:
				data_type = variables[node.variable].data_type
		port = Port(name=name, data_type=data_type, is_input=is_input)
		(ports.inputs if is_input else ports.outputs).append(port)

	extra_inputs, extra_outputs = node.dynamic_ports()
	ports.inputs .extend(extra_inputs )
	ports.outputs.extend(extra_outputs)
	return ports


def is_flow_node(node: BaseType) -> bool:
	ports = node_ports(node)
	return any(p.data_type == DataType.EXECUTION_FLOW for p in ports.inputs + ports.outputs)


def node_catalogue() -> List[Dict[str, Any]]:
	"""Visible node kinds with their ports and defaults, for editors"""
	result = []
	for cls in get_args(GraphNodeUnion):
		info = _NODE_INFO.get(cls.__name__, {})
		if not info.get("visible", True):
			continue
		node  = cls()
		ports = node_ports(node)
		result.append({
			**info,
			"type"    : node.type,
			"inputs"  : [p.model_dump() for p in ports.inputs ],
			"outputs" : [p.model_dump() for p in ports.outputs],
		})
	return result


# =============================================================================
# GRAPH
# =============================================================================

class Connection(ComponentType):
	"""Directed link from one node's output port to another node's input port"""
	type        : Annotated[Literal["connection"], FieldRole.CONSTANT] = "connection"
	source      : Annotated[str                  , FieldRole.INPUT   ] = Field(description="Id of the node owning the output port")
	source_port : Annotated[str                  , FieldRole.INPUT   ] = Field(description="Name of the output port")
	target      : Annotated[str                  , FieldRole.INPUT   ] = Field(description="Id of the node owning the input port")
	target_port : Annotated[str                  , FieldRole.INPUT   ] = Field(description="Name of the input port")


class Variable(ComponentType):
	"""Graph-scoped variable; reinitialized from 'default' at every run"""
	type      : Annotated[Literal["variable"], FieldRole.CONSTANT] = "variable"
	name      : Annotated[str                , FieldRole.INPUT   ] = Field(description="Unique variable name")
	data_type : Annotated[DataType           , FieldRole.INPUT   ] = Field(default=DataType.STRING, description="Declared kind, used to coerce writes")
	default   : Annotated[Any                , FieldRole.INPUT   ] = Field(default=None,            description="Value at the start of a run")

	def initial_value(self) -> Any:
		if self.default is None:
			return default_for(self.data_type)
		return coerce(copy.deepcopy(self.default), self.data_type)


@node_info(visible=False)
class OptionsType(BaseModel):
	name        : Annotated[Optional[str], FieldRole.INPUT] = None
	description : Annotated[Optional[str], FieldRole.INPUT] = None


DEFAULT_GRAPH_NAME : str = "untitled"


class GraphOptions(OptionsType):
	type : Annotated[Literal["graph_options"], FieldRole.CONSTANT] = "graph_options"


DEFAULT_MAX_EVAL_DEPTH      : int   = 256
DEFAULT_MAX_FLOW_DEPTH      : int   = 64
DEFAULT_MAX_LOOP_ITERATIONS : int   = 1000
DEFAULT_MAX_STEPS           : int   = 100000
DEFAULT_POLL_INTERVAL_MS    : int   = 50
DEFAULT_USER_INPUT_TIMEOUT  : float = 300.0
DEFAULT_NODE_DELAY          : float = 0.0
DEFAULT_CAPTURE_DIR         : str   = "captures"


class ExecutionOptions(OptionsType):
	type                : Annotated[Literal["execution_options"], FieldRole.CONSTANT] = "execution_options"
	max_eval_depth      : Annotated[int                         , FieldRole.INPUT   ] = Field(default=DEFAULT_MAX_EVAL_DEPTH,      description="Ceiling on nested value evaluations before a cycle is reported")
	max_flow_depth      : Annotated[int                         , FieldRole.INPUT   ] = Field(default=DEFAULT_MAX_FLOW_DEPTH,      description="Ceiling on nested control bodies (loops, sequences)")
	max_loop_iterations : Annotated[int                         , FieldRole.INPUT   ] = Field(default=DEFAULT_MAX_LOOP_ITERATIONS, description="Hard cap on iterations of any single loop run")
	max_steps           : Annotated[int                         , FieldRole.INPUT   ] = Field(default=DEFAULT_MAX_STEPS,           description="Flow node executions allowed in one run")
	poll_interval_ms    : Annotated[int                         , FieldRole.INPUT   ] = Field(default=DEFAULT_POLL_INTERVAL_MS,    description="Longest stretch a suspended node goes without checking the stop flag")
	user_input_timeout  : Annotated[float                       , FieldRole.INPUT   ] = Field(default=DEFAULT_USER_INPUT_TIMEOUT,  description="Seconds a Read Input node waits for an answer")
	node_delay          : Annotated[float                       , FieldRole.INPUT   ] = Field(default=DEFAULT_NODE_DELAY,          description="Seconds to pause before each flow node, for visual stepping")
	persist_variables   : Annotated[bool                        , FieldRole.INPUT   ] = Field(default=False,                       description="Write final variable values back as defaults")
	capture_dir         : Annotated[str                         , FieldRole.INPUT   ] = Field(default=DEFAULT_CAPTURE_DIR,         description="Directory for screen captures")


class Graph(ComponentType):
	type        : Annotated[Literal["graph"]       , FieldRole.CONSTANT] = "graph"
	options     : Annotated[Optional[GraphOptions] , FieldRole.INPUT   ] = None
	nodes       : Annotated[List[Annotated[GraphNodeUnion, Field(discriminator="type")]], FieldRole.INPUT] = Field(default_factory=list)
	connections : Annotated[List[Connection]       , FieldRole.INPUT   ] = Field(default_factory=list)
	variables   : Annotated[List[Variable]         , FieldRole.INPUT   ] = Field(default_factory=list)

	@property
	def name(self) -> str:
		if self.options and self.options.name:
			return self.options.name
		return DEFAULT_GRAPH_NAME

	def get_node(self, node_id: str) -> Optional[BaseType]:
		return next((n for n in self.nodes if n.id == node_id), None)

	def get_variable(self, name: str) -> Optional[Variable]:
		return next((v for v in self.variables if v.name == name), None)

	def connect(self, source: str, source_port: str, target: str, target_port: str) -> Connection:
		connection = Connection(source=source, source_port=source_port, target=target, target_port=target_port)
		self.connections.append(connection)
		return connection

	def entry_nodes(self) -> List[BaseType]:
		return [n for n in self.nodes if n.type == "entry"]
