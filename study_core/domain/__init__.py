"""领域层模型与协议。

包含：
- models: 与上游 Provider 交互的 ChatMessage / ChatRequest / ChatResult 模型。
- cheatsheet: 结构化 cheat sheet 文档模型与校验。
- conversation: 客户端消息、Pack 模型及 PackStore 抽象。
- exceptions: 业务异常类型定义。
"""
