"""wsmgr - 多仓库工作空间 / 包集合管理工具"""

__version__ = "0.4.0"
