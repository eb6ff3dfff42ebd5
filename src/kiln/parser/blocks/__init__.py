"""Block parsing mixins for the Kiln parser."""

from kiln.parser.blocks.control_flow import ControlFlowBlockParsingMixin
from kiln.parser.blocks.core import BlockStackMixin
from kiln.parser.blocks.functions import FunctionBlockParsingMixin
from kiln.parser.blocks.special_blocks import SpecialBlockParsingMixin
from kiln.parser.blocks.template_structure import TemplateStructureBlockParsingMixin
from kiln.parser.blocks.variables import VariableBlockParsingMixin

__all__ = [
    "BlockStackMixin",
    "ControlFlowBlockParsingMixin",
    "FunctionBlockParsingMixin",
    "SpecialBlockParsingMixin",
    "TemplateStructureBlockParsingMixin",
    "VariableBlockParsingMixin",
]
