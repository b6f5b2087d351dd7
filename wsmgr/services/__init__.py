"""服务层

- vcs/: git / svn / archive 导入器
- pkgset/: 包集合解析、排序与 remotes 目录维护
- importer/: 源码包导入图遍历与排除传播
- osdeps.py: OS 依赖安装
- workspace_service.py: 面向 CLI 的编排入口
"""
