from .overlay import draw_association_overlay
from .report import pass_report_to_dict, write_pass_report

__all__ = [
    "draw_association_overlay",
    "pass_report_to_dict",
    "write_pass_report",
]
