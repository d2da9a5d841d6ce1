from .recorder import FC2Recorder, OutputFiles
