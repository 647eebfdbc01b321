"""领域层模型与协议。

包含：
- models: 文本/向量/图像的统一请求与结果模型。
- storage: 向量记录模型及 VectorStorage 抽象。
- exceptions: 异常类型定义。
"""
