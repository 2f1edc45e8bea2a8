"""Asset Gateway：带缓存、单航班去重、provider 故障转移与签名上传的图片资产生成服务。"""

__version__ = "0.1.0"
