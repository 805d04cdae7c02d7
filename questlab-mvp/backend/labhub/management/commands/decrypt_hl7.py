"""
解密 HL7 结果文件。

用法：
  python manage.py decrypt_hl7 list <directory>
  python manage.py decrypt_hl7 decrypt <input_file> [output_file]

文件不存在 / 读失败 / 解密失败 / 解出来为空 → 非 0 退出。
"""

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from labhub.crypto.base import DatabaseKeyProvider
from labhub.crypto.decryptor import ResultDecryptor, list_result_files
from labhub.exceptions import DecryptionError
from labhub.hub.types import HubConfig


class Command(BaseCommand):
    help = 'List or decrypt stored HL7 result files'

    def add_arguments(self, parser):
        subparsers = parser.add_subparsers(dest='action', required=True)

        list_parser = subparsers.add_parser('list', help='List files with encryption status')
        list_parser.add_argument('directory')

        decrypt_parser = subparsers.add_parser('decrypt', help='Decrypt a single file')
        decrypt_parser.add_argument('input')
        decrypt_parser.add_argument('output', nargs='?')

    def handle(self, *args, **options):
        if options['action'] == 'list':
            self.list_files(Path(options['directory']))
        else:
            self.decrypt_file(Path(options['input']), options.get('output'))

    def list_files(self, directory):
        if not directory.is_dir():
            raise CommandError(f"Directory not found: {directory}")

        files = list_result_files(directory)
        self.stdout.write(f"{directory} ({len(files)} files)")
        for info in files:
            status = f"encrypted v{info.version}" if info.encrypted else "plaintext"
            self.stdout.write(
                f"{info.name}\t{info.size}\t{info.modified:%Y-%m-%d %H:%M:%S}\t{status}"
            )

    def decrypt_file(self, input_path, output):
        if not input_path.is_file():
            raise CommandError(f"File not found: {input_path}")
        try:
            raw = input_path.read_bytes()
        except OSError as exc:
            raise CommandError(f"Could not read file: {input_path} ({exc})")

        config = HubConfig.from_settings()
        decryptor = ResultDecryptor(DatabaseKeyProvider(), drive_encryption=config.drive_encryption)
        try:
            result = decryptor.decrypt(raw)
        except DecryptionError as exc:
            raise CommandError(f"Decryption failed for {input_path.name}: {exc.message}")

        if not result.content:
            raise CommandError(f"Decrypted content is empty: {input_path.name}")
        if result.warning:
            self.stderr.write(self.style.WARNING(result.warning))

        if output:
            try:
                Path(output).write_bytes(result.content)
            except OSError as exc:
                raise CommandError(f"Could not write {output}: {exc}")
            self.stderr.write(self.style.SUCCESS(f"Decrypted {input_path.name} → {output}"))
        else:
            self.stdout.write(result.content.decode('utf-8', errors='replace'), ending='')
