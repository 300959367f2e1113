"""Events package.

In-process "data changed" signal. Keep import side-effect free; the database
module imports the broker helpers at startup.
"""

__all__: list[str] = []
