"""
tvon - TV ON 管理系统的 WhatsApp 会话核心

模块概述：
    本文件是 tvon 包的入口文件（__init__.py），定义了包的元信息。
    tvon 负责维护与 WhatsApp 网络之间唯一的一条长连接会话，
    供客户管理、工单、PIX 收款等上层功能收发消息。

    核心功能包括：
    - 会话生命周期管理（连接、扫码配对、断线重连、登出）
    - 入站消息与状态变化的事件分发
    - 断线期间的出站消息排队与重连后的顺序补发
    - 号码有效性查询、头像查询、已读回执等辅助能力
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "📺"
