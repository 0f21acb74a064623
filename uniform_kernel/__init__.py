"""
Uniform Kernel

Inventory and distribution tracking for school uniforms:
- Uniform policies per level and gender
- Student rosters with per-student receipt logs
- Batch stock with transactional deduction on issue
- Deficit reports derived from policy, roster, and log
"""

__version__ = "0.1.0"
