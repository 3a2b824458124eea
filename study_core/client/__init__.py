"""学习助手客户端。

- state: 会话状态容器与纯函数状态迁移。
- cancellation: 协作式取消令牌。
- lifecycle: 请求生命周期控制器（单请求在途、过期响应丢弃）。
- transport: 调用代理服务的 HTTP 适配器。
- session: 把控制器与 Pack 存储组合成完整的客户端会话。
"""
