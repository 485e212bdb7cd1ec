"""项目内使用的自定义异常定义。"""


class ImageSqueezeError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageSqueezeError):
    """配置不合法时抛出。"""


class CodecPoolError(ImageSqueezeError):
    """编解码池无法启动或关闭，属于致命错误。"""


class ImageDecodeError(ImageSqueezeError):
    """单个文件解码失败。"""


class ImageEncodeError(ImageSqueezeError):
    """单个格式编码失败。"""


class ImageWriteError(ImageSqueezeError):
    """输出写入失败。"""


class DuplicateOutputError(ImageSqueezeError):
    """同一任务对同一格式重复产出结果。"""
