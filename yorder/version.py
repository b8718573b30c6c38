__version__ = "0.1.0"
__author__ = "yorder contributors"
__description__ = "分组内加权列表排序库"
