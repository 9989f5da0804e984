"""
食堂餐券与套餐额度服务
"""

__version__ = "1.0.0"
