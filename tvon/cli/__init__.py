"""
命令行接口模块 - 提供 tvon 的 CLI 入口。

本模块基于 Typer 框架构建命令行工具，支持：
- tvon onboard：初始化配置
- tvon run：连接 WhatsApp 并保持运行
- tvon send / check：发送消息、查询号码
- tvon logout：删除凭据
- tvon status：查看状态
"""
