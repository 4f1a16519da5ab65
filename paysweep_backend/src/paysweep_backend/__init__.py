"""paysweep 后端：支付超时清扫调度服务"""
