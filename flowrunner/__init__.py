"""flowrunner - run small graphs of code nodes.

Graph mode follows edges and branches on node output; queue mode runs nodes
in creation order, end-to-end or one step at a time.
"""

__version__ = "0.1.0"
