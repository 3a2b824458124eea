"""StudyTools 顶层包。

该包提供学习助手的代理服务与桌面客户端，
包括配置加载、领域模型、Provider 适配、结构化 cheat sheet 校验、
请求分发与降级、客户端请求生命周期以及 Pack 持久化等能力。
"""

__version__ = "1.0.0"
