"""管理接口：请求/响应模型、服务层与路由"""
