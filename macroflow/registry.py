# registry

from   typing      import Any


from   .automation import *
from   .nodes      import *
from   .schema     import BaseType


_NODE_TYPES = {
	# Control
	"entry"                 : WFEntryFlow,
	"notes"                 : WFNotesType,
	"branch"                : WFBranchFlow,
	"sequence"              : WFSequenceFlow,
	"gate"                  : WFGateFlow,
	"for_loop"              : WFForLoopFlow,
	"while_loop"            : WFWhileLoopFlow,
	"for_loop_async"        : WFForLoopAsyncFlow,
	"wait_for_condition"    : WFWaitForConditionFlow,
	"delay"                 : WFDelayFlow,

	# Variables
	"get_variable"          : WFGetVariableNode,
	"set_variable"          : WFSetVariableFlow,

	# Math
	"add"                   : WFAddNode,
	"subtract"              : WFSubtractNode,
	"multiply"              : WFMultiplyNode,
	"divide"                : WFDivideNode,
	"modulo"                : WFModuloNode,
	"power"                 : WFPowerNode,
	"abs"                   : WFAbsNode,
	"min"                   : WFMinNode,
	"max"                   : WFMaxNode,
	"clamp"                 : WFClampNode,
	"random"                : WFRandomNode,
	"constant"              : WFConstantNode,

	# Comparison and logic
	"equals"                : WFEqualsNode,
	"not_equals"            : WFNotEqualsNode,
	"greater_than"          : WFGreaterThanNode,
	"greater_than_or_equal" : WFGreaterThanOrEqualNode,
	"less_than"             : WFLessThanNode,
	"less_than_or_equal"    : WFLessThanOrEqualNode,
	"and"                   : WFAndNode,
	"or"                    : WFOrNode,
	"xor"                   : WFXorNode,
	"not"                   : WFNotNode,

	# Strings and conversion
	"concat"                : WFConcatNode,
	"split"                 : WFSplitNode,
	"length"                : WFLengthNode,
	"contains"              : WFContainsNode,
	"replace"               : WFReplaceNode,
	"format"                : WFFormatNode,
	"string_join"           : WFStringJoinNode,
	"string_between"        : WFStringBetweenNode,
	"string_trim"           : WFStringTrimNode,
	"extract_after"         : WFExtractAfterNode,
	"extract_until"         : WFExtractUntilNode,
	"to_integer"            : WFToIntegerNode,
	"to_float"              : WFToFloatNode,
	"to_string"             : WFToStringNode,
	"get_timestamp"         : WFGetTimestampNode,

	# Arrays and JSON
	"array_create"          : WFArrayCreateNode,
	"array_get"             : WFArrayGetNode,
	"array_length"          : WFArrayLengthNode,
	"array_push"            : WFArrayPushFlow,
	"array_pop"             : WFArrayPopFlow,
	"array_set"             : WFArraySetFlow,
	"json_parse"            : WFJsonParseNode,
	"json_stringify"        : WFJsonStringifyNode,

	# I/O and system
	"print"                 : WFPrintFlow,
	"read_input"            : WFReadInputFlow,
	"file_read"             : WFFileReadFlow,
	"file_write"            : WFFileWriteFlow,
	"http_request"          : WFHttpRequestFlow,
	"run_command"           : WFRunCommandFlow,
	"launch_app"            : WFLaunchAppFlow,
	"close_app"             : WFCloseAppFlow,
	"focus_window"          : WFFocusWindowFlow,
	"get_window_position"   : WFGetWindowPositionNode,
	"set_window_position"   : WFSetWindowPositionFlow,

	# Input automation
	"click"                 : WFClickFlow,
	"double_click"          : WFDoubleClickFlow,
	"right_click"           : WFRightClickFlow,
	"mouse_move"            : WFMouseMoveFlow,
	"mouse_down"            : WFMouseDownFlow,
	"mouse_up"              : WFMouseUpFlow,
	"scroll"                : WFScrollFlow,
	"key_press"             : WFKeyPressFlow,
	"key_down"              : WFKeyDownFlow,
	"key_up"                : WFKeyUpFlow,
	"type_text"             : WFTypeTextFlow,
	"type_string"           : WFTypeStringFlow,
	"hot_key"               : WFHotKeyFlow,

	# Screen and image
	"screen_capture"        : WFScreenCaptureFlow,
	"save_screenshot"       : WFSaveScreenshotFlow,
	"region_capture"        : WFRegionCaptureFlow,
	"get_pixel_color"       : WFGetPixelColorFlow,
	"find_color"            : WFFindColorFlow,
	"wait_for_color"        : WFWaitForColorFlow,
	"find_image"            : WFFindImageFlow,
	"wait_for_image"        : WFWaitForImageFlow,
	"image_similarity"      : WFImageSimilarityNode,
}


def create_node(node: BaseType, impl: Any = None, **kwargs) -> WFBaseType:
	node_class = _NODE_TYPES.get(node.type, WFBaseType)
	return node_class(node, impl, **kwargs)
