"""
命令行启动入口
从 config.yaml 读取配置，发送告警或试渲染模板
"""
import sys

from alert_notifier.cli import main

if __name__ == "__main__":
    sys.exit(main())
