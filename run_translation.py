#!/usr/bin/env python3
"""
文档段落翻译工具（本地版）

子命令：
    import     注册文件并提取段落
    translate  翻译文件中待翻译/失败的段落（默认批量并发，--sequential 逐段）
    export     导出译文（原格式或纯文本）
    status     查看文件翻译状态
    models     列出提供商可用模型并校验 API key
"""
import asyncio
import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from tqdm import tqdm

# 添加项目路径
sys.path.insert(0, str(Path(__file__).parent))

from segtrans.config import DEFAULT_DB_PATH, DEFAULT_MAX_INPUT_TOKENS
from segtrans.errors import ConfigurationError, DocumentParseError, SegmentTranslationError
from segtrans.lib.adapters import get_ai_service_factory
from segtrans.lib.segment_db import SegmentDatabase
from segtrans.models import FileType
from segtrans.translation import BatchTranslationOutcome, TranslationOptions
from segtrans.utils import format_duration, load_config
from segtrans.workflows import FileWorkflow


def load_env():
    """从项目根目录或当前目录加载 .env"""
    for env_path in (Path(__file__).parent / '.env', Path.cwd() / '.env'):
        if env_path.exists():
            load_dotenv(env_path, override=False)  # 不覆盖已有环境变量
            print(f"✓ 已加载环境配置: {env_path}")
            break


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='文档段落翻译工具（本地版）')
    parser.add_argument('--db', default=DEFAULT_DB_PATH, help=f'段落数据库路径 (默认: {DEFAULT_DB_PATH})')
    parser.add_argument('--verbose', '-v', action='store_true', help='详细输出')
    sub = parser.add_subparsers(dest='command', required=True)

    p_import = sub.add_parser('import', help='注册文件并提取段落')
    p_import.add_argument('path', help='文件路径 (.txt/.xlf/.xliff/.mqxliff)')
    p_import.add_argument('--type', choices=[t.value for t in FileType], help='显式指定文件类型')

    p_translate = sub.add_parser('translate', help='翻译文件')
    p_translate.add_argument('file_id')
    p_translate.add_argument('--provider', help='AI 提供商 (openai/grok)，未指定时取 --config 中的 provider')
    p_translate.add_argument('--model', help='模型名，默认取 <PROVIDER>_DEFAULT_MODEL')
    p_translate.add_argument('--source-lang', help='源语言，默认取文件元数据')
    p_translate.add_argument('--target-lang', help='目标语言，默认取文件元数据')
    p_translate.add_argument('--domain', help='领域，如 legal/medical')
    p_translate.add_argument('--temperature', type=float)
    p_translate.add_argument('--max-tokens', type=int,
                             help=f'单批输入 token 上限 (默认: {DEFAULT_MAX_INPUT_TOKENS})')
    p_translate.add_argument('--sequential', action='store_true', help='逐段顺序翻译')
    p_translate.add_argument('--config', help='翻译选项文件 (yaml/json)，命令行参数优先')

    p_export = sub.add_parser('export', help='导出译文')
    p_export.add_argument('file_id')
    p_export.add_argument('target', help='导出路径')

    p_status = sub.add_parser('status', help='查看翻译状态')
    p_status.add_argument('file_id')

    p_models = sub.add_parser('models', help='列出可用模型')
    p_models.add_argument('--provider', default='openai')
    return parser


def build_options(args) -> TranslationOptions:
    file_config = load_config(args.config) if args.config else {}
    return TranslationOptions(
        target_language=args.target_lang or file_config.get('target_language'),
        source_language=args.source_lang or file_config.get('source_language'),
        ai_config=args.provider or file_config.get('provider'),
        model=args.model or file_config.get('model'),
        temperature=args.temperature if args.temperature is not None else file_config.get('temperature'),
        domain=args.domain or file_config.get('domain'),
        max_input_tokens=int(args.max_tokens or file_config.get('max_input_tokens') or DEFAULT_MAX_INPUT_TOKENS),
    )


async def cmd_import(workflow: FileWorkflow, args) -> int:
    file_type = FileType(args.type) if args.type else None
    record = workflow.register_file(args.path, file_type)
    result = await workflow.extract_file(record.id)
    print(f"✓ 文件ID: {record.id}")
    print(f"  类型: {record.file_type.value}")
    print(f"  段落数: {result.segment_count}")
    for key in ('source_language', 'target_language'):
        if result.metadata.get(key):
            print(f"  {key}: {result.metadata[key]}")
    return 0


async def cmd_translate(workflow: FileWorkflow, args) -> int:
    options = build_options(args)
    start = time.time()

    if not args.sequential:
        outcome: BatchTranslationOutcome = await workflow.translate_file(args.file_id, options)
        print(f"\n{'='*60}")
        print(f"批量翻译{'完成' if outcome.success else '部分失败'} ({format_duration(time.time() - start)})")
        print(f"{'='*60}")
        print(f"  成功: {outcome.updated_count}")
        print(f"  失败: {len(outcome.failed_segments)}")
        for failed in outcome.failed_segments:
            print(f"   ❌ [{failed.index}] {failed.reason}")
        return 0 if outcome.success else 2

    pbar = tqdm(desc="逐段翻译", unit="段")

    def on_progress(task, progress):
        pbar.total = progress.total_segments
        pbar.update(1)
        pbar.set_postfix({'完成': progress.completed_segments, '失败': progress.failed_segments})

    try:
        progress = await workflow.translate_file(
            args.file_id, options, sequential=True, progress_callback=on_progress
        )
    except SegmentTranslationError as e:
        print(f"\n❌ {e}")
        return 2
    finally:
        pbar.close()
    print(f"✓ 顺序翻译完成: {progress.completed_segments}/{progress.total_segments} "
          f"({format_duration(time.time() - start)})")
    return 0


async def cmd_export(workflow: FileWorkflow, args) -> int:
    path = await workflow.export_file(args.file_id, args.target)
    print(f"✓ 已导出: {path}")
    return 0


async def cmd_status(workflow: FileWorkflow, args) -> int:
    summary = workflow.get_file_summary(args.file_id)
    print(f"文件 {summary.file_id}: {summary.state}")
    print(f"  段落总数: {summary.total}")
    for status, count in sorted(summary.counts.items()):
        print(f"  {status}: {count}")
    return 0


async def cmd_models(workflow: FileWorkflow, args) -> int:
    adapter = get_ai_service_factory().get_adapter(args.provider)
    if not await adapter.validate_api_key():
        print(f"❌ {args.provider} API key 无效")
        return 1
    for model in await adapter.list_available_models():
        extra = f" (max_tokens={model.max_tokens})" if model.max_tokens else ""
        print(f"  - {model.id}{extra}")
    return 0


COMMANDS = {
    'import': cmd_import,
    'translate': cmd_translate,
    'export': cmd_export,
    'status': cmd_status,
    'models': cmd_models,
}


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    workflow = FileWorkflow(SegmentDatabase(args.db))
    try:
        return await COMMANDS[args.command](workflow, args)
    except ConfigurationError as e:
        print("\n" + "=" * 60)
        print(f"❌ 配置错误：{e}")
        print("=" * 60 + "\n")
        return 1
    except (DocumentParseError, ValueError) as e:
        print(f"❌ {e}")
        return 1


def cli():
    load_env()
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
