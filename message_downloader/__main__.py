from message_downloader.ui.main_window import run

run()
